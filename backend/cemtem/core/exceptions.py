"""
Error taxonomy for the bot core and safe HTTP errors for the API.

Conversation handlers never let these escape to the transport: the session
router converts every one of them into a reply for the person who triggered it.
HTTP routes use BusinessError so internal details stay in the logs.
"""
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


class CemTemError(Exception):
    """Base class for all domain errors."""

    user_message = "❌ Something went wrong. Please send /start to try again."


class StorageError(CemTemError):
    """Any persistence failure. Callers do not interpret the cause."""


class DeliveryError(CemTemError):
    """Outbound message could not be delivered on a channel."""


class LookupMissError(CemTemError):
    """A referenced record does not exist."""

    def __init__(self, identifier: str, user_message: str | None = None):
        super().__init__(f"{self.__class__.__name__}: {identifier}")
        self.identifier = identifier
        if user_message:
            self.user_message = user_message


class InquiryNotFoundError(LookupMissError):
    user_message = "❌ Inquiry not found. Please check the Inquiry ID and try again."


class VendorNotFoundError(LookupMissError):
    user_message = (
        "❌ You are not registered as a vendor yet. "
        "Send /start and choose 'Register As A Vendor' first."
    )


class SessionExpiredError(CemTemError):
    """Action arrived for a draft or session that no longer exists (stale button)."""

    user_message = "❌ Session expired. Please start again."


class BusinessError:
    """HTTP exceptions with safe (non-leaky) messages."""

    @staticmethod
    def not_found(resource: str = "Resource", reason: str = "") -> HTTPException:
        """
        Generic 404.

        Example:
            if not inquiry:
                raise BusinessError.not_found("Inquiry")
        """
        if reason:
            logger.warning(f"Not found: {resource} - {reason}")

        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )

    @staticmethod
    def bad_request(detail: str) -> HTTPException:
        """400 for input validation errors. Safe to echo: the caller caused it."""
        logger.info(f"Bad request: {detail}")
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )

    @staticmethod
    def server_error(original_error: Exception = None) -> HTTPException:
        """
        Generic 500 - logs actual error internally, hides from user.
        """
        if original_error:
            logger.error(
                f"Internal server error: {type(original_error).__name__}: {str(original_error)}",
                exc_info=True
            )
        else:
            logger.error("Internal server error occurred", exc_info=True)

        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred. Please try again later.",
        )
