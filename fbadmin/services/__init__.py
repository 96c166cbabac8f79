"""Service layer exports."""

from fbadmin.services.messaging_service import MessagingService
from fbadmin.services.revocation_service import RevocationService

__all__ = ["MessagingService", "RevocationService"]
