"""Database model exports."""

from .kv import KVEntry
from .oauth import LINKED_AUTO, LINKED_MANUAL, PASSWORD_PROVIDER, OAuthAccount
from .permission import ModulePermissionGrant
from .user import User, new_id

__all__ = [
    "KVEntry",
    "LINKED_AUTO",
    "LINKED_MANUAL",
    "ModulePermissionGrant",
    "OAuthAccount",
    "PASSWORD_PROVIDER",
    "User",
    "new_id",
]
