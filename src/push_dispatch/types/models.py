"""Data models for push-dispatch.

This module defines the immutable records exchanged between the dispatch
engine components: device records read from the registry, the payload
handed to the push provider, per-device outcomes and the two shapes of a
dispatch result.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Annotated, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ErrorKind(StrEnum):
    """Classification attached to a failed device delivery."""

    MISSING_ROUTE = "missing_route"
    PERMANENT = "permanent"
    RETRYABLE = "retryable"
    REGISTRY_UNREACHABLE = "registry_unreachable"
    INTERNAL = "internal"


@dataclass(slots=True, frozen=True)
class Device:
    """One registered push destination belonging to a recipient.

    ``provider_user_id`` is the opaque routing handle given to the push
    provider. Records written by old clients may lack it.
    """

    device_id: str
    provider_user_id: str | None
    display_name: str = "Unknown"


@dataclass(slots=True, frozen=True)
class NotificationPayload:
    """Notification content derived once per event.

    Every ``data`` value is a string because the map crosses a JSON
    serialization boundary to the push provider.
    """

    title: str
    body: str
    data: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        coerced = {str(key): str(value) for key, value in self.data.items()}
        object.__setattr__(self, "data", MappingProxyType(coerced))

    def to_dict(self) -> dict[str, object]:
        return {"title": self.title, "body": self.body, "data": dict(self.data)}


@dataclass(slots=True, frozen=True)
class SendReceipt:
    """Provider acknowledgement for one accepted push."""

    message_id: str


@dataclass(slots=True, frozen=True)
class DeviceOutcome:
    """Result of delivering one notification to one device.

    ``auto_cleaned`` is only ever set on failed deliveries whose target the
    provider reported as gone; it means a registry delete was attempted.
    """

    device_id: str
    display_name: str
    success: bool
    duration_ms: float
    provider_message_id: str | None = None
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    auto_cleaned: bool = False

    def __post_init__(self) -> None:
        if self.auto_cleaned and self.success:
            msg = "auto_cleaned outcomes cannot be successful"
            raise ValueError(msg)


@dataclass(slots=True, frozen=True)
class Delivering:
    """Early acknowledgement: delivery continues in the background."""

    device_count: int


@dataclass(slots=True, frozen=True)
class Completed:
    """Full fan-out result with one outcome per scheduled device."""

    total: int
    succeeded: int
    failed: int
    outcomes: tuple[DeviceOutcome, ...] = ()

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[DeviceOutcome]) -> Self:
        collected = tuple(outcomes)
        succeeded = sum(1 for outcome in collected if outcome.success)
        return cls(
            total=len(collected),
            succeeded=succeeded,
            failed=len(collected) - succeeded,
            outcomes=collected,
        )


@dataclass(slots=True, frozen=True)
class Response:
    """HTTP response.

    Represents an HTTP response with status code, body, and headers.
    """

    status: int
    body: Mapping[str, object]
    headers: Mapping[str, str]


class NotificationEvent(BaseModel):
    """Inbound "new message" trigger payload.

    Field aliases follow the camelCase JSON written by the chat backend.
    ``target_device_id`` narrows delivery to a single registered device.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    recipient_id: Annotated[str, Field(validation_alias=AliasChoices("recipientId", "recipient_id"), min_length=1)]
    chat_id: Annotated[str, Field(validation_alias=AliasChoices("chatId", "chat_id"), min_length=1)]
    sender_id: Annotated[
        str | None,
        Field(validation_alias=AliasChoices("senderId", "sender_id")),
    ] = None
    message_id: Annotated[
        str | None,
        Field(validation_alias=AliasChoices("messageId", "message_id", "$id")),
    ] = None
    type: Annotated[str, Field(description="Message type (text, image, video, audio, file, location)")] = "text"
    text: str = "New message"
    target_device_id: Annotated[
        str | None,
        Field(validation_alias=AliasChoices("deviceId", "targetDeviceId", "target_device_id")),
    ] = None

    @field_validator("chat_id", "sender_id", "message_id", mode="before")
    @classmethod
    def coerce_identifier(cls, value: object) -> object:
        """Accept numeric identifiers from loosely typed producers."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("sender_id", "message_id", "target_device_id", mode="after")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: object) -> object:
        if value is None or value == "":
            return "text"
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("text", mode="before")
    @classmethod
    def default_text(cls, value: object) -> object:
        if value is None or value == "":
            return "New message"
        return value
