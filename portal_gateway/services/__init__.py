"""Service layer: the auth engine."""

from .identity import IdentityResolver, Resolution
from .kv import ExchangeStore, KVStore, RevocationStore
from .passwords import (
    generate_random_password,
    hash_password,
    validate_password_strength,
    verify_password,
)
from .permissions import PermissionEvaluator, PermissionService
from .sessions import SessionManager, extract_token
from .tokens import TokenCodec, build_codec

__all__ = [
    "ExchangeStore",
    "IdentityResolver",
    "KVStore",
    "PermissionEvaluator",
    "PermissionService",
    "Resolution",
    "RevocationStore",
    "SessionManager",
    "TokenCodec",
    "build_codec",
    "extract_token",
    "generate_random_password",
    "hash_password",
    "validate_password_strength",
    "verify_password",
]
