"""Per-channel message formatting."""

import html
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from peddler.notify.base import NotificationMessage

NEW_ITEM_COLOR = "#36a64f"
PRICE_DROP_COLOR = "#ff6b6b"


def format_price(price: Optional[Decimal]) -> str:
    """Format a price as ``$1,250`` (cents only when present)."""
    if price is None:
        return ""
    if price == price.to_integral_value():
        return f"${price:,.0f}"
    return f"${price:,.2f}"


def _headline(message: NotificationMessage) -> str:
    if message.is_price_drop:
        return f"Price Drop Alert (-{message.drop_percentage or 0:.1f}%)"
    return "New Listing Found"


def format_slack_attachment(message: NotificationMessage) -> Dict[str, Any]:
    """
    Format a message as a Slack attachment payload.

    Args:
        message: Notification message

    Returns:
        Slack webhook payload
    """
    if message.is_price_drop:
        color = PRICE_DROP_COLOR
        title = "📉 Price Drop Alert"
        text = f"Price dropped by {message.drop_percentage or 0:.1f}% for a tracked listing."
    else:
        color = NEW_ITEM_COLOR
        title = "🆕 New Listing Found"
        text = f'Found a new listing matching your search criteria for "{message.watcher_name}".'

    fields = [
        {"title": "Title", "value": message.title, "short": False},
        {"title": "Price", "value": format_price(message.price), "short": True},
        {"title": "Location", "value": message.location or "-", "short": True},
    ]
    if message.previous_price is not None:
        fields.append(
            {"title": "Previous Price", "value": format_price(message.previous_price), "short": True}
        )

    attachment = {
        "color": color,
        "title": title,
        "title_link": message.url,
        "text": text,
        "fields": fields,
        "footer": f"Peddler • {message.watcher_name}",
        "ts": int(time.time()),
    }
    if message.image_url:
        attachment["image_url"] = message.image_url

    return {"attachments": [attachment]}


def format_telegram_message(message: NotificationMessage) -> str:
    """Format a message as Telegram HTML."""
    emoji = "📉" if message.is_price_drop else "🆕"

    lines = [
        f"{emoji} <b>{_headline(message)}</b>",
        "",
        f"<b>Title:</b> {html.escape(message.title)}",
        f"<b>Price:</b> {format_price(message.price)}",
    ]
    if message.previous_price is not None:
        lines.append(f"<b>Previous Price:</b> {format_price(message.previous_price)}")
    lines.extend([
        f"<b>Location:</b> {html.escape(message.location or '-')}",
        f"<b>Watcher:</b> {html.escape(message.watcher_name)}",
        "",
        f'<a href="{html.escape(message.url, quote=True)}">View Listing</a>',
    ])
    return "\n".join(lines)


def format_pushover_message(message: NotificationMessage) -> Dict[str, str]:
    """Format a message as Pushover title and body."""
    prefix = "Price Drop" if message.is_price_drop else "New"
    title = f"{prefix}: {message.title}"[:250]

    body = format_price(message.price)
    if message.previous_price is not None:
        body += f" (was {format_price(message.previous_price)})"
        if message.drop_percentage:
            body += f" - {message.drop_percentage:.1f}% drop"
    body += f"\n📍 {message.location or '-'}"
    body += f"\n🔍 {message.watcher_name}"

    return {"title": title, "message": body}


def format_discord_embed(message: NotificationMessage) -> Dict[str, Any]:
    """Format a message as a Discord webhook payload with one embed."""
    emoji = "📉" if message.is_price_drop else "🆕"
    embed = {
        "title": f"{emoji} {_headline(message)}: {message.title}"[:256],
        "url": message.url,
        "color": 0xFF6B6B if message.is_price_drop else 0x36A64F,
        "fields": [
            {"name": "Price", "value": format_price(message.price), "inline": True},
        ],
        "footer": {"text": f"Peddler • {message.watcher_name}"},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if message.previous_price is not None:
        embed["fields"].append(
            {"name": "Was", "value": format_price(message.previous_price), "inline": True}
        )
    if message.drop_percentage:
        embed["fields"].append(
            {"name": "Drop", "value": f"{message.drop_percentage:.1f}%", "inline": True}
        )
    if message.location:
        embed["fields"].append({"name": "Location", "value": message.location, "inline": False})
    if message.image_url:
        embed["image"] = {"url": message.image_url}

    return {"embeds": [embed], "username": "Peddler"}
