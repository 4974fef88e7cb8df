from typing import Optional

from fastapi import status


class Commit2DocError(Exception):
    """Base class for failures surfaced to the caller of a provider operation."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unexpected error."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidUrl(Commit2DocError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid repository URL."


class MissingCredential(Commit2DocError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "A personal access token is required."


class Unauthorized(Commit2DocError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized. Please check your Personal Access Token (PAT)."


class NotFound(Commit2DocError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found."


class ProviderError(Commit2DocError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "The provider returned an error."


class NetworkError(Commit2DocError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Could not reach the provider."


class ProviderTimeout(Commit2DocError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "The provider did not respond in time."
