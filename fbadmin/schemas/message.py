"""FCM message schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_TARGET_FIELDS = ("token", "topic", "condition")


class Notification(BaseModel):
    """Display notification shown by the client platform."""

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    body: str | None = None
    image: str | None = None


class MessageBody(BaseModel):
    """Message content shared by single-target and multicast messages.

    Platform option blocks are passed through to FCM unmodified.
    """

    model_config = ConfigDict(frozen=True)

    notification: Notification | None = None
    data: dict[str, str] | None = None
    android: dict[str, Any] | None = None
    apns: dict[str, Any] | None = None
    webpush: dict[str, Any] | None = None

    @field_validator("data", mode="before")
    @classmethod
    def stringify_data(cls, value: Any) -> Any:
        """FCM data payloads only carry string keys and values."""
        if isinstance(value, dict):
            return {str(key): str(item) for key, item in value.items()}
        return value

    def body_fields(self) -> dict[str, Any]:
        """Return the shared content fields as constructor keyword arguments."""
        return {
            "notification": self.notification,
            "data": self.data,
            "android": self.android,
            "apns": self.apns,
            "webpush": self.webpush,
        }


class Message(MessageBody):
    """Message addressed to exactly one device token, topic or condition."""

    token: str | None = None
    topic: str | None = None
    condition: str | None = None

    @model_validator(mode="after")
    def validate_single_target(self) -> Message:
        """Require exactly one target field."""
        targets = [name for name in _TARGET_FIELDS if getattr(self, name) is not None]
        if len(targets) != 1:
            raise ValueError("Message must set exactly one of token, topic or condition.")
        return self

    @classmethod
    def for_device(
        cls,
        token: str,
        notification: Notification | dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        **options: Any,
    ) -> Message:
        """Build a message for one device registration token."""
        return cls(token=token, notification=notification, data=data, **options)

    @classmethod
    def for_topic(
        cls,
        topic: str,
        notification: Notification | dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        **options: Any,
    ) -> Message:
        """Build a message for every subscriber of ``topic``."""
        return cls(topic=topic, notification=notification, data=data, **options)

    @classmethod
    def for_condition(
        cls,
        condition: str,
        notification: Notification | dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        **options: Any,
    ) -> Message:
        """Build a message for a topic condition expression."""
        return cls(condition=condition, notification=notification, data=data, **options)

    def to_payload(self) -> dict[str, Any]:
        """Build the ``messages:send`` request body, omitting unset fields."""
        return {"message": self.model_dump(exclude_none=True)}


class MulticastMessage(MessageBody):
    """One message body fanned out to many device tokens.

    Tokens are checked by the dispatcher, which reports malformed entries as
    ``invalid_targets`` rather than a validation error.
    """

    tokens: list[Any] = Field(default_factory=list)

    @classmethod
    def for_devices(
        cls,
        tokens: list[Any],
        notification: Notification | dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        **options: Any,
    ) -> MulticastMessage:
        """Build a multicast message for ``tokens``."""
        return cls(tokens=tokens, notification=notification, data=data, **options)

    def for_token(self, token: str) -> Message:
        """Derive the single-device message for ``token``."""
        return Message(token=token, **self.body_fields())
