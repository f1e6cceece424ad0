"""
Pipeline Error Taxonomy

Every failure in the upload → extract → review → commit pipeline is one of
the exceptions below. Each carries a `user_message` that is safe to show
in the UI; the orchestrator catches them at the boundary nearest their
origin and turns them into a single notification.

None of these are retried automatically. The user re-initiates.
"""

from typing import Optional


class BookkeeperError(Exception):
    """Base exception for pipeline errors."""

    default_user_message = "Something went wrong. Please try again."

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message or self.default_user_message


class ValidationError(BookkeeperError):
    """Uploaded file was rejected (bad type, too large, empty)."""

    default_user_message = "This file cannot be processed."


class ConfigurationError(BookkeeperError):
    """A required upstream credential or setting is missing."""

    default_user_message = "The extraction service is not configured."


class UpstreamError(BookkeeperError):
    """The AI model (or its HTTP transport) returned an error."""

    default_user_message = "The extraction service returned an error."

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Optional[str] = None,
        user_message: Optional[str] = None,
    ):
        self.status = status
        self.body = body
        super().__init__(message, user_message)


class ParseError(BookkeeperError):
    """The model's reply did not contain a usable JSON object."""

    default_user_message = "Could not read transactions from the model output."


class PersistenceError(BookkeeperError):
    """Writing the confirmed statement to the store failed."""

    default_user_message = "Failed to save the bank statement."

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        user_message: Optional[str] = None,
    ):
        self.stage = stage
        super().__init__(message, user_message)


class AuthenticationError(BookkeeperError):
    """Sign-in, sign-up or sign-out was refused by the auth provider."""

    default_user_message = "Authentication failed. Please check your credentials."
