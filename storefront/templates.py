"""
Message template helpers.

Transactional email content is managed by store staff and lives in the
email_templates collection (see commerce.services.email_templates). This
module holds the pieces shared by every renderer: {{variable}} substitution,
formatting of money and item lists, and the short SMS bodies that are not
staff-editable.

Design decisions:
- Placeholders use {{name}} (double braces) so HTML/CSS braces are untouched
- Unknown placeholders are left verbatim rather than blanked out
- SMS bodies stay under 160 characters for typical values
"""

import re
from enum import Enum
from typing import Any, Mapping, Optional

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")


class TemplateKey(str, Enum):
    """Keys of the managed email templates the system sends."""
    ORDER_CONFIRMATION = "order_confirmation"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    BACK_IN_STOCK = "back_in_stock"
    PROMOTION_ANNOUNCEMENT = "promotion_announcement"


# Which customer preference governs each template
NOTIFICATION_KINDS: dict[str, str] = {
    TemplateKey.ORDER_CONFIRMATION.value: "order_updates",
    TemplateKey.ORDER_SHIPPED.value: "order_updates",
    TemplateKey.ORDER_DELIVERED.value: "order_updates",
    TemplateKey.BACK_IN_STOCK.value: "stock_alerts",
    TemplateKey.PROMOTION_ANNOUNCEMENT.value: "promotions",
}


SMS_TEMPLATES: dict[str, str] = {
    TemplateKey.ORDER_CONFIRMATION.value: (
        "{{store_name}}: order #{{order_number}} confirmed. Total {{order_total}}."
    ),
    TemplateKey.ORDER_SHIPPED.value: (
        "{{store_name}}: order #{{order_number}} shipped via {{carrier}}. Tracking: {{tracking_number}}"
    ),
    TemplateKey.ORDER_DELIVERED.value: (
        "{{store_name}}: order #{{order_number}} was delivered. Enjoy your plants!"
    ),
    TemplateKey.BACK_IN_STOCK.value: (
        "{{store_name}}: {{product_name}} is back in stock."
    ),
    TemplateKey.PROMOTION_ANNOUNCEMENT.value: (
        "{{store_name}}: {{promotion_name}} - {{promotion_description}}. Code: {{coupon_code}}"
    ),
}


def get_notification_kind(template_key: str) -> Optional[str]:
    return NOTIFICATION_KINDS.get(template_key)


def replace_variables(text: str, variables: Mapping[str, Any]) -> str:
    """
    Substitute {{name}} placeholders.

    Values are converted with str(); None renders as an empty string.
    Placeholders with no matching variable are kept as written.
    """
    if not text:
        return text

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(_sub, text)


def find_placeholders(text: str) -> list[str]:
    """Placeholder names in order of first appearance."""
    seen: list[str] = []
    for name in PLACEHOLDER_PATTERN.findall(text or ""):
        if name not in seen:
            seen.append(name)
    return seen


def format_currency(amount: Optional[float]) -> str:
    if amount is None:
        amount = 0.0
    return f"${amount:,.2f}"


def format_item_list(items: list[dict], html: bool = False) -> str:
    """
    Format order items for inclusion in an email body.

    Args:
        items: Dicts with 'name', 'quantity' and optionally 'line_total'
        html: Render as a <ul> list instead of plain text lines
    """
    lines = []
    for item in items:
        text = f"{item['name']} (x{item['quantity']})"
        if item.get("line_total") is not None:
            text += f" - {format_currency(item['line_total'])}"
        lines.append(text)

    if html:
        return "<ul>" + "".join(f"<li>{line}</li>" for line in lines) + "</ul>"
    return "\n".join(f"  - {line}" for line in lines)


def render_sms(template_key: str, variables: Mapping[str, Any]) -> Optional[str]:
    body = SMS_TEMPLATES.get(template_key)
    if body is None:
        return None
    return replace_variables(body, variables)
