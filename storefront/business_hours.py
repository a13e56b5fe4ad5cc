"""
Business-hours gate: the store takes orders until the configured closing hour.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from storefront.config import Config
from storefront.models import BusinessHoursState

logger = logging.getLogger(__name__)

HoursListener = Callable[[BusinessHoursState], None]


def is_near_closing(minutes_until_close: int, warning_threshold: int = 30) -> bool:
    return 0 < minutes_until_close <= warning_threshold


def evaluate_business_hours(
    closing_hour: int,
    now: datetime,
    warning_threshold: Optional[int] = None,
) -> BusinessHoursState:
    """Open while the current local hour is before the closing hour"""
    if warning_threshold is None:
        warning_threshold = Config.CLOSING_WARNING_MINUTES

    is_open = now.hour < closing_hour
    minutes_until_close = 0
    if is_open:
        minutes_until_close = (closing_hour - now.hour - 1) * 60 + (60 - now.minute)

    return BusinessHoursState(
        is_open=is_open,
        closing_hour=closing_hour,
        current_hour=now.hour,
        minutes_until_close=minutes_until_close,
        near_closing=is_near_closing(minutes_until_close, warning_threshold),
    )


def closing_time_message(closing_hour: int) -> str:
    """22 -> "10:00 PM" """
    hour12 = closing_hour - 12 if closing_hour > 12 else closing_hour
    period = "PM" if closing_hour >= 12 else "AM"
    return f"{hour12}:00 {period}"


class BusinessHoursMonitor:
    """Re-evaluates business hours on a fixed interval and publishes the state"""

    def __init__(
        self,
        closing_hour: Optional[int] = None,
        interval: Optional[float] = None,
        warning_threshold: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.closing_hour = Config.CLOSING_HOUR if closing_hour is None else closing_hour
        self.interval = interval or Config.BUSINESS_HOURS_POLL_SECONDS
        self.warning_threshold = (
            Config.CLOSING_WARNING_MINUTES if warning_threshold is None else warning_threshold
        )
        self.clock = clock
        self._listeners: List[HoursListener] = []
        self._task: Optional[asyncio.Task] = None
        self.state = self.check()

    def check(self) -> BusinessHoursState:
        self.state = evaluate_business_hours(self.closing_hour, self.clock(), self.warning_threshold)
        return self.state

    def subscribe(self, listener: HoursListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        for listener in list(self._listeners):
            listener(self.state)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            previous = self.state
            self.check()
            if previous.is_open and not self.state.is_open:
                logger.info(f"Store closed at {self.closing_hour}:00")
            self._publish()

    def start(self) -> None:
        """Publish the current state and start polling on the running loop"""
        if self.running:
            return
        self.check()
        self._publish()
        self._task = asyncio.get_running_loop().create_task(self._poll())

    async def stop(self) -> None:
        """Cancel the polling task"""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
