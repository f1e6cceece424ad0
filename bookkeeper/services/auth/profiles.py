"""
Profile Provisioning

Every signed-in user needs a `profiles` row (and organization users a
`companies` row). Provisioning runs on every sign-in and must be safe to
run twice, including two sessions racing on first sign-in.

The profile primary key IS the auth user id, so the store's uniqueness
constraint decides the race: whoever inserts first provisions; the loser
gets DuplicateError and reads the winner's row. Only the winner creates a
company, so a racing pair never produces two companies.
"""

from typing import Optional

import structlog

from bookkeeper.audit import AuditLogger
from bookkeeper.errors import PersistenceError
from bookkeeper.models.session import AuthUser, Company, Profile, UserRole, UserType
from bookkeeper.services.storage import (
    DuplicateError,
    ProfileStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

STAGE_PROFILE = "profile"


def default_full_name(user: AuthUser) -> str:
    """full_name, then name, then the email's local part, then 'User'."""
    metadata = user.metadata or {}
    for key in ("full_name", "name"):
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    if user.email and "@" in user.email:
        local = user.email.split("@", 1)[0]
        if local:
            return local
    return "User"


def _user_type(value) -> UserType:
    try:
        return UserType(value)
    except ValueError:
        return UserType.INDIVIDUAL


class ProfileService:
    """
    Idempotent profile (and company) provisioning.

    Args:
        storage: Profile storage backend
        audit_logger: Records first-time provisioning. Optional.
    """

    def __init__(
        self,
        storage: ProfileStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger

    async def ensure_profile(self, user: AuthUser) -> Profile:
        """
        Return the user's profile, creating it on first sign-in.

        Raises:
            PersistenceError: If the store cannot be read or written
        """
        try:
            existing = await self._storage.get_profile(user.id)
            if existing is not None:
                return existing

            metadata = user.metadata or {}
            company_name = (metadata.get("company_name") or "").strip() or None
            gst_number = (metadata.get("gst_number") or "").strip() or None

            profile = Profile(
                id=user.id,
                email=user.email or "",
                full_name=default_full_name(user),
                role=UserRole.USER,
                user_type=_user_type(metadata.get("user_type")),
                company_name=company_name,
                gst_number=gst_number,
            )

            try:
                created = await self._storage.insert_profile(profile)
            except DuplicateError:
                # lost the race; the winner's row is authoritative
                logger.info("profile_already_provisioned", user_id=str(user.id))
                winner = await self._storage.get_profile(user.id)
                if winner is None:
                    raise StorageError(f"Profile vanished after duplicate insert: {user.id}")
                return winner

            if created.user_type == UserType.ORGANIZATION and company_name:
                company = await self._storage.insert_company(Company(
                    name=company_name,
                    gst_number=gst_number,
                    email=user.email,
                ))
                created = await self._storage.set_profile_company(user.id, company.id)
        except StorageError as e:
            logger.error("profile_provisioning_failed", user_id=str(user.id), error=str(e))
            raise PersistenceError(
                f"Failed to provision profile: {e}",
                stage=STAGE_PROFILE,
                user_message="Could not load your profile. Please try again.",
            )

        logger.info(
            "profile_provisioned",
            user_id=str(user.id),
            user_type=created.user_type.value,
            company_id=str(created.company_id) if created.company_id else None,
        )
        if self._audit:
            await self._audit.log_profile_provisioned(
                user_id=user.id,
                user_type=created.user_type.value,
                company_id=created.company_id,
            )
        return created
