import asyncio
from datetime import datetime

import pytest

from storefront.business_hours import (
    BusinessHoursMonitor,
    closing_time_message,
    evaluate_business_hours,
    is_near_closing,
)


def _at(hour, minute=0):
    return datetime(2026, 10, 19, hour, minute)


@pytest.mark.parametrize("now, is_open, minutes", [
    (_at(8, 0), True, 840),
    (_at(21, 0), True, 60),
    (_at(21, 45), True, 15),
    (_at(21, 59), True, 1),
    (_at(22, 0), False, 0),
    (_at(23, 30), False, 0),
    (_at(0, 5), True, 1315),
])
def test_evaluate_business_hours(now, is_open, minutes):
    state = evaluate_business_hours(22, now)
    assert state.is_open is is_open
    assert state.minutes_until_close == minutes
    assert state.closing_hour == 22
    assert state.current_hour == now.hour


def test_near_closing_flag():
    assert evaluate_business_hours(22, _at(21, 40), warning_threshold=30).near_closing
    assert not evaluate_business_hours(22, _at(21, 0), warning_threshold=30).near_closing
    assert not evaluate_business_hours(22, _at(22, 10), warning_threshold=30).near_closing


@pytest.mark.parametrize("minutes, expected", [(0, False), (1, True), (30, True), (31, False)])
def test_is_near_closing(minutes, expected):
    assert is_near_closing(minutes) is expected


@pytest.mark.parametrize("hour, expected", [(22, "10:00 PM"), (12, "12:00 PM"), (9, "9:00 AM")])
def test_closing_time_message(hour, expected):
    assert closing_time_message(hour) == expected


def test_monitor_polls_and_stops():
    times = iter([_at(21, 58), _at(21, 58), _at(21, 59), _at(22, 0), _at(22, 1), _at(22, 2), _at(22, 3)])
    last = [_at(22, 3)]

    def clock():
        try:
            last[0] = next(times)
        except StopIteration:
            pass
        return last[0]

    async def scenario():
        monitor = BusinessHoursMonitor(closing_hour=22, interval=0.01, clock=clock)
        seen = []
        monitor.subscribe(seen.append)
        monitor.start()
        assert monitor.running
        await asyncio.sleep(0.05)
        await monitor.stop()
        count = len(seen)
        await asyncio.sleep(0.03)
        return monitor, seen, count

    monitor, seen, count = asyncio.run(scenario())
    assert not monitor.running
    assert seen[0].is_open
    assert not seen[-1].is_open
    assert len(seen) == count


def test_stop_without_start_is_safe():
    async def scenario():
        monitor = BusinessHoursMonitor(closing_hour=22, clock=lambda: _at(10))
        await monitor.stop()
        return monitor

    assert not asyncio.run(scenario()).running
