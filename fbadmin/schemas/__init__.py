"""Schema exports."""

from fbadmin.schemas.message import Message, MessageBody, MulticastMessage, Notification

__all__ = ["Message", "MessageBody", "MulticastMessage", "Notification"]
