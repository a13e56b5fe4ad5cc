"""
WhatsApp hand-off: order text and the pre-filled wa.me link.
"""
import logging
import webbrowser
from typing import Optional
from urllib.parse import quote

from storefront.config import Config
from storefront.exceptions import HandOffError
from storefront.formatters import format_currency, format_phone_number
from storefront.models import CheckoutOrder, DeliveryType

logger = logging.getLogger(__name__)

PICKUP_LABEL = "Recoger en tienda"
DELIVERY_LABEL = "Domicilio"


def format_order_line(quantity: int, product_name: str, variant_name: Optional[str], unit_price) -> str:
    variant = f" - {variant_name}" if variant_name else ""
    return f"• {quantity}x {product_name}{variant} - {format_currency(unit_price)}"


def build_order_message(order: CheckoutOrder, store_name: Optional[str] = None) -> str:
    store_name = store_name or Config.STORE_NAME
    form = order.form

    lines = [
        f"*NUEVO PEDIDO - {store_name.upper()}*",
        "",
        f"*Cliente:* {form.customer_name}",
        f"*Teléfono:* {format_phone_number(form.customer_phone)}",
        "",
        "*PRODUCTOS:*",
    ]
    lines.extend(
        format_order_line(item.quantity, item.product_name, item.variant_name, item.unit_price)
        for item in order.items
    )
    lines.extend(["", f"*TOTAL: {format_currency(order.total)}*", ""])

    if form.delivery_type == DeliveryType.DELIVERY:
        lines.append(f"*Entrega:* {DELIVERY_LABEL}")
        lines.append(f"*Dirección:* {form.address}")
    else:
        lines.append(f"*Entrega:* {PICKUP_LABEL}")

    if form.notes:
        lines.extend(["", f"*Notas:* {form.notes}"])

    return "\n".join(lines)


def build_whatsapp_url(message: str, phone: Optional[str] = None) -> str:
    phone = phone or Config.WHATSAPP_NUMBER
    return f"{Config.WHATSAPP_URL}/{phone}?text={quote(message, safe='')}"


def open_in_browser(url: str) -> None:
    """
    Default hand-off: open the link with the system browser.

    Raises:
        HandOffError: If no browser could be launched
    """
    if not webbrowser.open(url, new=2):
        raise HandOffError("Could not open a browser for the WhatsApp link")
    logger.info("WhatsApp link opened")
