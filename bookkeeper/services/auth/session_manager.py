"""
Session Manager

Password auth against Supabase. A successful sign-in produces an explicit
SessionContext (user, tokens, profile) that the caller passes to every
handler; sign-out revokes the auth session and clears the context.

One SessionManager (and one Supabase client) per user session.
"""

from typing import Any, Optional

import structlog

from bookkeeper.audit import AuditLogger
from bookkeeper.errors import AuthenticationError
from bookkeeper.models.session import AuthUser, SessionContext, UserType
from bookkeeper.services.auth.profiles import ProfileService
from bookkeeper.services.storage import SupabaseClient


logger = structlog.get_logger(__name__)


def _auth_user(user: Any) -> AuthUser:
    """Map the auth provider's user object onto AuthUser."""
    return AuthUser(
        id=user.id,
        email=getattr(user, "email", None),
        metadata=dict(getattr(user, "user_metadata", None) or {}),
    )


class SessionManager:
    """
    Sign-in, registration and sign-out for one user session.

    Args:
        client: The session's Supabase client
        profiles: Provisioning service run after every sign-in
        audit_logger: Records session start/end. Optional.
    """

    def __init__(
        self,
        client: SupabaseClient,
        profiles: ProfileService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._client = client
        self._profiles = profiles
        self._audit = audit_logger

    async def _start(self, response: Any) -> SessionContext:
        user = _auth_user(response.user)
        session = response.session
        context = SessionContext(
            user=user,
            access_token=session.access_token,
            refresh_token=session.refresh_token,
        )
        context.profile = await self._profiles.ensure_profile(user)

        logger.info("session_started", user_id=str(user.id))
        if self._audit:
            await self._audit.log_session_started(user.id, user.email)
        return context

    async def sign_in(self, email: str, password: str) -> SessionContext:
        """
        Sign in with email and password and provision the profile.

        Raises:
            AuthenticationError: Credentials refused
            PersistenceError: Profile could not be provisioned
        """
        try:
            response = self._client.connect().auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as e:
            logger.warning("sign_in_failed", email=email, error=str(e))
            raise AuthenticationError(f"Sign-in failed: {e}")

        if response.user is None or response.session is None:
            raise AuthenticationError("Sign-in returned no session")
        return await self._start(response)

    async def register(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        user_type: UserType = UserType.INDIVIDUAL,
        company_name: Optional[str] = None,
        gst_number: Optional[str] = None,
    ) -> Optional[SessionContext]:
        """
        Create an account. The metadata is what provisioning reads later.

        Returns a SessionContext when the provider signs the user in
        straight away, or None when email confirmation is pending.

        Raises:
            AuthenticationError: Sign-up refused
        """
        metadata = {"user_type": user_type.value}
        if full_name:
            metadata["full_name"] = full_name
        if company_name:
            metadata["company_name"] = company_name
        if gst_number:
            metadata["gst_number"] = gst_number

        try:
            response = self._client.connect().auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": metadata},
            })
        except Exception as e:
            logger.warning("sign_up_failed", email=email, error=str(e))
            raise AuthenticationError(f"Sign-up failed: {e}")

        if response.user is None:
            raise AuthenticationError("Sign-up returned no user")
        if response.session is None:
            logger.info("sign_up_pending_confirmation", user_id=str(response.user.id))
            return None
        return await self._start(response)

    async def sign_out(self, context: SessionContext) -> None:
        """
        Revoke the auth session and clear the context.

        The context is cleared even if revocation fails.
        """
        user_id = context.user.id if context.user else None
        try:
            self._client.connect().auth.sign_out()
        except Exception as e:
            logger.warning("sign_out_failed", user_id=str(user_id), error=str(e))
            raise AuthenticationError(f"Sign-out failed: {e}")
        finally:
            context.clear()

        logger.info("session_ended", user_id=str(user_id))
        if self._audit and user_id is not None:
            await self._audit.log_session_ended(user_id)
