"""
Checkout: customer form validation, order assembly and the checkout flow
that hands the order off to WhatsApp.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from storefront.business_hours import BusinessHoursMonitor
from storefront.cart_store import CartStore
from storefront.exceptions import (
    EmptyCartError,
    HandOffError,
    StoreClosedError,
    ValidationError,
)
from storefront.models import Cart, CheckoutForm, CheckoutOrder, CheckoutResponse
from storefront.whatsapp import build_order_message, build_whatsapp_url, open_in_browser

logger = logging.getLogger(__name__)

CART_PATH = "/carrito"
SUCCESS_PATH = "/?pedido=enviado"
SEND_ERROR_MESSAGE = "No pudimos enviar tu pedido. Intenta nuevamente."
CLOSED_MESSAGE = "La tienda está cerrada. Recibimos pedidos hasta las {hour}:00."

FIELDS = tuple(CheckoutForm.model_fields)

NAME_TOO_SHORT = "El nombre debe tener al menos 2 caracteres"
PHONE_INVALID = "Número de celular inválido (debe tener 10 dígitos)"
DELIVERY_TYPE_INVALID = "Tipo de entrega inválido"

# Messages for pydantic's built-in error types, keyed by (field, error type)
MESSAGES: Dict[Tuple[str, str], str] = {
    ("customer_name", "missing"): NAME_TOO_SHORT,
    ("customer_name", "string_too_short"): NAME_TOO_SHORT,
    ("customer_name", "string_too_long"): "El nombre es muy largo",
    ("customer_name", "string_pattern_mismatch"): "El nombre solo puede contener letras y espacios",
    ("customer_phone", "missing"): PHONE_INVALID,
    ("customer_phone", "string_pattern_mismatch"): PHONE_INVALID,
    ("delivery_type", "missing"): DELIVERY_TYPE_INVALID,
    ("delivery_type", "enum"): DELIVERY_TYPE_INVALID,
    ("notes", "string_too_long"): "Las notas son muy largas",
}


def _form_errors(form_data: Mapping[str, Any]) -> Tuple[Optional[CheckoutForm], Dict[str, str]]:
    """Validate raw data against CheckoutForm; first message per field"""
    try:
        return CheckoutForm.model_validate(dict(form_data)), {}
    except PydanticValidationError as e:
        errors: Dict[str, str] = {}
        for error in e.errors():
            field = str(error["loc"][0]) if error["loc"] else "form"
            if field not in errors:
                errors[field] = MESSAGES.get((field, error["type"]), error["msg"])
        return None, errors


def validate_field(field: str, form_data: Mapping[str, Any]) -> Optional[str]:
    """Message for one field, or None when it is valid (used on blur)"""
    if field not in FIELDS:
        raise ValueError(f"Unknown checkout field: {field}")
    _, errors = _form_errors(form_data)
    return errors.get(field)


def validate_checkout_form(form_data: Mapping[str, Any]) -> Dict[str, str]:
    """Field-keyed messages for every invalid field; empty when the form is valid"""
    _, errors = _form_errors(form_data)
    return errors


def parse_checkout_form(form_data: Mapping[str, Any]) -> CheckoutForm:
    """
    Validate and normalise raw form data.

    Raises:
        ValidationError: With the field-keyed messages in ``errors``
    """
    form, errors = _form_errors(form_data)
    if errors:
        raise ValidationError("Invalid checkout form", errors=errors)
    return form


def assemble_order(form: CheckoutForm, cart: Cart) -> CheckoutOrder:
    """
    Combine a validated form with a copy of the cart lines and total.

    Raises:
        EmptyCartError: If the cart has no lines
    """
    if cart.is_empty:
        raise EmptyCartError("Cannot checkout empty cart")
    return CheckoutOrder(form=form, items=list(cart.items), total=cart.total)


class CheckoutStatus(str, Enum):
    IDLE = "idle"
    AWAITING_FORM = "awaiting_form"
    FORM_VALID = "form_valid"
    SENDING = "sending"
    SUCCESS = "success"


class CheckoutFlow:
    """
    State of the checkout screen.

    idle -> awaiting_form -> form_valid -> sending -> success, or back to
    form_valid with ``error`` set when the hand-off fails. An empty cart at
    any point before sending sets ``redirect`` to the cart view.
    """

    def __init__(
        self,
        store: CartStore,
        hand_off: Callable[[str], None] = open_in_browser,
        hours: Optional[BusinessHoursMonitor] = None,
        store_name: Optional[str] = None,
        whatsapp_number: Optional[str] = None,
    ):
        self.store = store
        self.hand_off = hand_off
        self.hours = hours
        self.store_name = store_name
        self.whatsapp_number = whatsapp_number
        self.status = CheckoutStatus.IDLE
        self.form: Optional[CheckoutForm] = None
        self.errors: Dict[str, str] = {}
        self.error: Optional[str] = None
        self.redirect: Optional[str] = None
        self._unsubscribe = store.subscribe(self._on_cart_change)

    def _on_cart_change(self, cart: Cart) -> None:
        if cart.is_empty and self.status in (CheckoutStatus.AWAITING_FORM, CheckoutStatus.FORM_VALID):
            self._leave_for_cart()

    def _leave_for_cart(self) -> None:
        logger.info("Cart is empty, leaving checkout")
        self.status = CheckoutStatus.IDLE
        self.redirect = CART_PATH

    def _ensure_cart(self) -> bool:
        if self.store.get_cart().is_empty:
            self._leave_for_cart()
            return False
        return True

    def start(self) -> CheckoutStatus:
        self.redirect = None
        self.error = None
        if self._ensure_cart():
            self.status = CheckoutStatus.AWAITING_FORM
        return self.status

    def blur(self, field: str, form_data: Mapping[str, Any]) -> Optional[str]:
        """Re-validate one field and update its message"""
        message = validate_field(field, form_data)
        if message:
            self.errors[field] = message
        else:
            self.errors.pop(field, None)
        return message

    def submit_form(self, form_data: Mapping[str, Any]) -> bool:
        """Full validation pass; moves to form_valid when every field holds"""
        if self.status in (CheckoutStatus.IDLE, CheckoutStatus.SUCCESS):
            self.start()
        if not self._ensure_cart():
            return False

        try:
            self.form = parse_checkout_form(form_data)
        except ValidationError as e:
            self.form = None
            self.errors = dict(e.errors)
            self.status = CheckoutStatus.AWAITING_FORM
            return False

        self.errors = {}
        self.status = CheckoutStatus.FORM_VALID
        return True

    def send(self) -> CheckoutResponse:
        """
        Hand the order off and clear the cart once the hand-off has started.

        Raises:
            ValidationError: If the form has not been validated
            EmptyCartError: If the cart emptied before sending
            StoreClosedError: Outside business hours
            HandOffError: If the messaging hand-off failed; the cart is kept
        """
        if self.status != CheckoutStatus.FORM_VALID or self.form is None:
            raise ValidationError("Checkout form has not been validated", errors=self.errors)
        if not self._ensure_cart():
            raise EmptyCartError("Cannot checkout empty cart")

        if self.hours is not None:
            state = self.hours.check()
            if not state.is_open:
                self.error = CLOSED_MESSAGE.format(hour=state.closing_hour)
                raise StoreClosedError(state.closing_hour)

        self.status = CheckoutStatus.SENDING
        self.error = None
        order = assemble_order(self.form, self.store.get_cart())
        message = build_order_message(order, self.store_name)
        url = build_whatsapp_url(message, self.whatsapp_number)

        try:
            self.hand_off(url)
        except Exception as e:
            logger.error(f"WhatsApp hand-off failed: {type(e).__name__}: {e}", exc_info=True)
            self.status = CheckoutStatus.FORM_VALID
            self.error = SEND_ERROR_MESSAGE
            raise HandOffError(SEND_ERROR_MESSAGE) from e

        self.store.clear()
        self.status = CheckoutStatus.SUCCESS
        self.redirect = SUCCESS_PATH
        logger.info(f"Order handed off: {len(order.items)} lines")

        return CheckoutResponse(
            whatsapp_url=url,
            message=message,
            total=order.total,
            items=order.items,
            redirect=SUCCESS_PATH,
        )

    def close(self) -> None:
        """Stop watching the cart"""
        self._unsubscribe()
