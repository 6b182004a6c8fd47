"""
Error Classifier - Classify errors as retryable or non-retryable
"""

from typing import Dict, Any
import httpx
from sqlalchemy.exc import DBAPIError, OperationalError

from shortsfusion.core.providers import ProviderError, RenderTimeout


class ErrorClassifier:
    """
    Classify errors for retry decisions and stored failure details
    """

    # Error codes
    ERROR_NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    ERROR_NETWORK_ERROR = "NETWORK_ERROR"
    ERROR_DATABASE_UNAVAILABLE = "DATABASE_UNAVAILABLE"
    ERROR_SCRIPT_FAILED = "SCRIPT_GENERATION_FAILED"
    ERROR_IMAGE_FAILED = "IMAGE_GENERATION_FAILED"
    ERROR_VOICE_FAILED = "VOICEOVER_FAILED"
    ERROR_RENDER_FAILED = "RENDER_FAILED"
    ERROR_RENDER_TIMEOUT = "RENDER_TIMEOUT"
    ERROR_PROVIDER_AUTH = "PROVIDER_AUTH"
    ERROR_PROVIDER_RATE_LIMIT = "PROVIDER_RATE_LIMIT"
    ERROR_VALIDATION_FAILED = "VALIDATION_FAILED"
    ERROR_UNKNOWN = "UNKNOWN_ERROR"

    PROVIDER_CODES = {
        "script": ERROR_SCRIPT_FAILED,
        "image": ERROR_IMAGE_FAILED,
        "voice": ERROR_VOICE_FAILED,
        "render": ERROR_RENDER_FAILED,
    }

    def classify(self, error: Exception) -> Dict[str, Any]:
        """
        Classify error

        Args:
            error: Exception to classify

        Returns:
            Dict with code, message, classification, retryable
        """
        if isinstance(error, RenderTimeout):
            return {
                "code": self.ERROR_RENDER_TIMEOUT,
                "message": "Video render did not finish in time",
                "classification": "non_retryable",
                "retryable": False,
                "provider": error.provider,
            }

        elif isinstance(error, ProviderError):
            if error.status_code == 401 or error.status_code == 403:
                code = self.ERROR_PROVIDER_AUTH
            elif error.status_code == 429:
                code = self.ERROR_PROVIDER_RATE_LIMIT
            else:
                code = self.PROVIDER_CODES.get(error.provider, self.ERROR_UNKNOWN)
            return {
                "code": code,
                "message": error.message,
                "classification": "retryable" if error.retryable else "non_retryable",
                "retryable": error.retryable,
                "provider": error.provider,
            }

        elif isinstance(error, httpx.TimeoutException):
            return {
                "code": self.ERROR_NETWORK_TIMEOUT,
                "message": "Network timeout while contacting a generation service",
                "classification": "retryable",
                "retryable": True,
            }

        elif isinstance(error, httpx.NetworkError):
            return {
                "code": self.ERROR_NETWORK_ERROR,
                "message": "Network error occurred",
                "classification": "retryable",
                "retryable": True,
            }

        elif isinstance(error, OperationalError) or (
            isinstance(error, DBAPIError) and error.connection_invalidated
        ):
            return {
                "code": self.ERROR_DATABASE_UNAVAILABLE,
                "message": "Database temporarily unavailable",
                "classification": "retryable",
                "retryable": True,
            }

        elif isinstance(error, (ConnectionError, TimeoutError)):
            return {
                "code": self.ERROR_NETWORK_ERROR,
                "message": str(error) or "Connection error",
                "classification": "retryable",
                "retryable": True,
            }

        # Validation errors
        if "ValidationError" in type(error).__name__ or isinstance(error, ValueError):
            return {
                "code": self.ERROR_VALIDATION_FAILED,
                "message": str(error),
                "classification": "non_retryable",
                "retryable": False,
            }

        # Default - unknown error
        return {
            "code": self.ERROR_UNKNOWN,
            "message": f"An unexpected error occurred: {str(error)}",
            "classification": "non_retryable",
            "retryable": False,
        }
