"""ORM model exports."""

from fbadmin.models.public_key_cache import KEYS_ROW_NAME, PublicKeyCache

__all__ = ["KEYS_ROW_NAME", "PublicKeyCache"]
