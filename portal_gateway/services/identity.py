"""Mapping external identities and password logins onto local users."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from ..core.errors import Conflict, LinkError, NotFound, ValidationFailed
from ..core.time import Clock, utcnow
from ..models import (
    LINKED_AUTO,
    LINKED_MANUAL,
    PASSWORD_PROVIDER,
    ModulePermissionGrant,
    OAuthAccount,
    User,
)
from .oauth.base import ProviderProfile, ProviderTokens
from .passwords import (
    generate_random_password,
    hash_password,
    validate_password_strength,
    verify_password,
)

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100


@dataclass
class Resolution:
    user: User
    is_new_user: bool
    linked_method: Optional[str]


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class IdentityResolver:
    def __init__(self, session: Session, clock: Clock = utcnow) -> None:
        self.session = session
        self.clock = clock

    # lookups

    def get_user(self, user_id: str) -> Optional[User]:
        return self.session.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        normalized = normalize_email(email)
        if not normalized:
            return None
        return self.session.exec(
            select(User).where(func.lower(User.email) == normalized)
        ).first()

    def find_linkage(self, provider: str, provider_user_id: str) -> Optional[OAuthAccount]:
        return self.session.exec(
            select(OAuthAccount).where(
                OAuthAccount.provider == provider,
                OAuthAccount.provider_user_id == provider_user_id,
            )
        ).first()

    def linkages(self, user_id: str) -> List[OAuthAccount]:
        return list(
            self.session.exec(
                select(OAuthAccount)
                .where(OAuthAccount.user_id == user_id)
                .order_by(OAuthAccount.linked_at)
            ).all()
        )

    def list_users(self) -> List[User]:
        return list(self.session.exec(select(User).order_by(User.created_at)).all())

    def _require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    # OAuth

    def _apply_tokens(
        self, account: OAuthAccount, profile: ProviderProfile, tokens: Optional[ProviderTokens]
    ) -> None:
        now = self.clock()
        account.email = profile.email
        account.name = profile.name
        account.picture = profile.picture
        if tokens is not None:
            account.access_token = tokens.access_token
            account.refresh_token = tokens.refresh_token
            account.token_expires_at = tokens.expires_at
        account.updated_at = now

    def _attach(
        self,
        user: User,
        profile: ProviderProfile,
        tokens: Optional[ProviderTokens],
        linked_method: str,
    ) -> OAuthAccount:
        now = self.clock()
        account = OAuthAccount(
            user_id=user.id,
            provider=profile.provider,
            provider_user_id=profile.provider_user_id,
            linked_method=linked_method,
            linked_at=now,
            created_at=now,
        )
        self._apply_tokens(account, profile, tokens)
        self.session.add(account)
        return account

    def _touch_login(self, user: User) -> None:
        now = self.clock()
        user.last_login_at = now
        user.updated_at = now
        self.session.add(user)

    def resolve(
        self, profile: ProviderProfile, tokens: Optional[ProviderTokens] = None
    ) -> Resolution:
        """Find or create the local user behind an OAuth callback."""

        account = self.find_linkage(profile.provider, profile.provider_user_id)
        if account is not None:
            user = self._require_user(account.user_id)
            self._apply_tokens(account, profile, tokens)
            self.session.add(account)
            self._touch_login(user)
            self.session.commit()
            self.session.refresh(user)
            logger.info(
                "[%s] Existing linkage for user %s", profile.provider, user.id
            )
            return Resolution(user=user, is_new_user=False, linked_method=account.linked_method)

        user = self.find_by_email(profile.email)
        is_new_user = user is None
        if user is None:
            now = self.clock()
            user = User(
                email=normalize_email(profile.email),
                name=profile.name,
                picture=profile.picture,
                created_at=now,
                updated_at=now,
            )
            self.session.add(user)
        elif any(a.provider == profile.provider for a in self.linkages(user.id)):
            # Both linkages are kept; unlink removes a provider as a whole.
            logger.warning(
                "[%s] User %s already has a linkage from this provider, adding %s by email match",
                profile.provider,
                user.id,
                profile.provider_user_id,
            )

        self._attach(user, profile, tokens, LINKED_AUTO)
        self._touch_login(user)
        try:
            self.session.commit()
        except IntegrityError:
            # A concurrent callback created the same user or linkage first.
            self.session.rollback()
            logger.warning(
                "[%s] Lost creation race for %s, retrying lookup",
                profile.provider,
                profile.email,
            )
            return self.resolve(profile, tokens)
        self.session.refresh(user)

        if is_new_user:
            logger.info("[%s] Created user %s for %s", profile.provider, user.id, user.email)
        else:
            logger.info("[%s] Auto-linked to user %s by email", profile.provider, user.id)
        return Resolution(user=user, is_new_user=is_new_user, linked_method=LINKED_AUTO)

    def link(
        self, user_id: str, profile: ProviderProfile, tokens: Optional[ProviderTokens] = None
    ) -> OAuthAccount:
        """Attach a provider identity to an already signed-in user."""

        user = self._require_user(user_id)

        existing = self.find_linkage(profile.provider, profile.provider_user_id)
        if existing is not None:
            if existing.user_id == user.id:
                raise LinkError(f"{profile.provider} account is already linked")
            raise LinkError(f"This {profile.provider} account belongs to another user")

        if any(account.provider == profile.provider for account in self.linkages(user.id)):
            raise LinkError(f"A {profile.provider} account is already linked")

        account = self._attach(user, profile, tokens, LINKED_MANUAL)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise LinkError(f"This {profile.provider} account belongs to another user") from exc
        self.session.refresh(account)
        logger.info("[%s] Manually linked to user %s", profile.provider, user.id)
        return account

    def unlink(self, user_id: str, provider: str) -> None:
        """Remove every linkage the user has with ``provider``."""

        user = self._require_user(user_id)
        accounts = self.linkages(user.id)
        targets = [a for a in accounts if a.provider == provider]
        if not targets:
            raise NotFound(f"No {provider} account linked")
        if len(targets) == len(accounts):
            raise LinkError("Cannot remove the last sign-in method")

        for account in targets:
            self.session.delete(account)
        if provider == PASSWORD_PROVIDER:
            user.password_hash = None
            user.must_change_password = False
            user.updated_at = self.clock()
            self.session.add(user)
        self.session.commit()
        logger.info("[%s] Unlinked from user %s", provider, user.id)

    def merge(self, source_user_id: str, target_user_id: str) -> User:
        """Fold ``source`` into ``target`` and delete ``source``. Irreversible.

        Each step commits on its own and re-running after a partial merge
        finishes the job. Every provider linkage moves to the target, even
        when the target already has that provider. The source's password
        linkage is keyed by the source's own id and is dropped with it.
        """

        if source_user_id == target_user_id:
            raise ValidationFailed("Cannot merge an account into itself")
        target = self._require_user(target_user_id)
        source = self.get_user(source_user_id)
        if source is None:
            logger.info("Merge %s -> %s already complete", source_user_id, target.id)
            return target

        for account in self.linkages(source.id):
            if account.provider == PASSWORD_PROVIDER:
                continue
            account.user_id = target.id
            account.updated_at = self.clock()
            self.session.add(account)
            self.session.commit()

        target_modules = set(
            self.session.exec(
                select(ModulePermissionGrant.module_id).where(
                    ModulePermissionGrant.user_id == target.id
                )
            ).all()
        )
        source_grants = self.session.exec(
            select(ModulePermissionGrant).where(ModulePermissionGrant.user_id == source.id)
        ).all()
        for grant in source_grants:
            if grant.module_id in target_modules:
                self.session.delete(grant)
            else:
                grant.user_id = target.id
                self.session.add(grant)
                target_modules.add(grant.module_id)
            self.session.commit()

        for account in self.linkages(source.id):
            self.session.delete(account)
        self.session.delete(source)
        self.session.commit()
        self.session.refresh(target)
        logger.info("Merged user %s into %s", source_user_id, target.id)
        return target

    # password logins

    def invite(self, email: str, name: str) -> Tuple[User, str]:
        """Create (or extend) a password account. Returns the one-time password."""

        normalized = normalize_email(email)
        if "@" not in normalized:
            raise ValidationFailed("A valid email is required")
        name = (name or "").strip() or normalized.split("@")[0]
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationFailed(f"Name must be at most {MAX_NAME_LENGTH} characters")

        now = self.clock()
        user = self.find_by_email(normalized)
        if user is not None and user.password_hash:
            raise Conflict("User already has a password")
        if user is None:
            user = User(email=normalized, name=name, created_at=now)
            self.session.add(user)

        password = generate_random_password()
        user.password_hash = hash_password(password)
        user.must_change_password = True
        user.updated_at = now
        self.session.add(user)
        self.session.add(
            OAuthAccount(
                user_id=user.id,
                provider=PASSWORD_PROVIDER,
                provider_user_id=user.id,
                email=normalized,
                name=user.name,
                linked_method=LINKED_MANUAL,
                linked_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict("User already exists") from exc
        self.session.refresh(user)
        logger.info("Invited user %s (%s)", user.id, user.email)
        return user, password

    def authenticate_password(self, email: str, password: str) -> Optional[User]:
        user = self.find_by_email(email)
        if user is None or not user.password_hash:
            logger.info("Password login failed: unknown account")
            return None
        if not verify_password(password or "", user.password_hash):
            logger.info("Password login failed for user %s", user.id)
            return None
        self._touch_login(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def change_password(self, user_id: str, current: Optional[str], new: str) -> User:
        user = self._require_user(user_id)
        if user.password_hash and not verify_password(current or "", user.password_hash):
            raise ValidationFailed("Current password is incorrect")
        problem = validate_password_strength(new or "")
        if problem:
            raise ValidationFailed(problem)
        if user.password_hash and current == new:
            raise ValidationFailed("New password must differ from the current one")

        had_password = bool(user.password_hash)
        user.password_hash = hash_password(new)
        user.must_change_password = False
        user.updated_at = self.clock()
        self.session.add(user)
        if not had_password and not any(
            account.provider == PASSWORD_PROVIDER for account in self.linkages(user.id)
        ):
            self.session.add(
                OAuthAccount(
                    user_id=user.id,
                    provider=PASSWORD_PROVIDER,
                    provider_user_id=user.id,
                    email=user.email,
                    name=user.name,
                    linked_method=LINKED_MANUAL,
                    linked_at=user.updated_at,
                )
            )
        self.session.commit()
        self.session.refresh(user)
        logger.info("Password changed for user %s", user.id)
        return user

    # profile and moderation

    def update_profile(
        self, user_id: str, name: Optional[str] = None, picture: Optional[str] = None
    ) -> User:
        user = self._require_user(user_id)
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationFailed("Name cannot be empty")
            if len(name) > MAX_NAME_LENGTH:
                raise ValidationFailed(f"Name must be at most {MAX_NAME_LENGTH} characters")
            user.name = name
        if picture is not None:
            picture = picture.strip()
            if picture and urlparse(picture).scheme not in {"http", "https"}:
                raise ValidationFailed("Picture must be an http(s) URL")
            user.picture = picture or None
        user.updated_at = self.clock()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def set_banned(self, user_id: str, banned: bool) -> User:
        user = self._require_user(user_id)
        user.banned = banned
        user.updated_at = self.clock()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info("User %s %s", user.id, "banned" if banned else "unbanned")
        return user


__all__ = ["IdentityResolver", "MAX_NAME_LENGTH", "Resolution", "normalize_email"]
