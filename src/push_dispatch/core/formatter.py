"""Notification text and data-map rendering for chat message events."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Final

from push_dispatch.core.config import FormattingConfig
from push_dispatch.types import NotificationEvent, NotificationPayload

ELLIPSIS: Final[str] = "..."

# message type -> (title suffix, fixed body)
MEDIA_TEMPLATES: Final[Mapping[str, tuple[str, str]]] = {
    "image": ("sent a photo", "📷 Image"),
    "video": ("sent a video", "🎥 Video"),
    "audio": ("sent a voice message", "🎤 Audio"),
    "file": ("sent a file", "📎 File"),
    "location": ("shared a location", "📍 Location"),
}

NOTIFICATION_DATA_TYPE: Final[str] = "chat_message"


def truncate(text: str, max_length: int) -> str:
    """Shorten ``text`` to ``max_length`` characters, ending with ``...``.

    Examples:
        >>> truncate("hello world", 8)
        'hello...'
        >>> truncate("short", 8)
        'short'
    """
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max(max_length - len(ELLIPSIS), 0)] + ELLIPSIS


def format_notification(
    message_type: str,
    text: str,
    sender_name: str,
    *,
    max_text_length: int = 100,
    max_title_length: int = 50,
) -> tuple[str, str]:
    """Return ``(title, body)`` for a chat message.

    Media messages get a "<sender> sent a photo" style title and a fixed
    body; text and unknown types use the sender as title and the message
    text as body.
    """
    template = MEDIA_TEMPLATES.get(message_type)
    if template is not None:
        suffix, body = template
        return truncate(f"{sender_name} {suffix}", max_title_length), body
    return truncate(sender_name, max_title_length), truncate(text, max_text_length)


def build_payload(
    event: NotificationEvent,
    sender_name: str,
    *,
    config: FormattingConfig,
    now: datetime | None = None,
) -> NotificationPayload:
    """Build the payload shared by every device of one event.

    The data map carries everything the mobile client needs to route the
    tap to the right chat without another round trip.
    """
    title, body = format_notification(
        event.type,
        event.text,
        sender_name,
        max_text_length=config.max_text_length,
        max_title_length=config.max_title_length,
    )
    timestamp = (now or datetime.now(UTC)).astimezone(UTC)
    data = {
        "type": NOTIFICATION_DATA_TYPE,
        "chatId": event.chat_id,
        "messageId": event.message_id or "",
        "senderId": event.sender_id or "",
        "senderName": sender_name,
        "messageType": event.type,
        "timestamp": timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "deepLink": f"{config.deep_link_scheme}://chat/{event.chat_id}",
    }
    return NotificationPayload(title=title, body=body, data=data)


def resolve_display_name(document: Mapping[str, object] | None) -> str | None:
    """Pick a display name from a user profile document.

    Preference: ``fullName``, ``username``, then the local part of
    ``email``. Blank values are skipped.

    Examples:
        >>> resolve_display_name({"username": "sam", "email": "s@example.com"})
        'sam'
        >>> resolve_display_name({"email": "jo@example.com"})
        'jo'
        >>> resolve_display_name({}) is None
        True
    """
    if not document:
        return None

    for key in ("fullName", "username"):
        value = document.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    email = document.get("email")
    if isinstance(email, str) and "@" in email:
        local_part = email.split("@", 1)[0].strip()
        if local_part:
            return local_part
    return None
