from typing import Any


class BitbucketCloudError(Exception):
    """Base class for everything raised by this package."""


class BitbucketCloudAPIError(BitbucketCloudError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: Any = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data
        super().__init__(message)

    def __str__(self):
        if self.status_code is None:
            return self.message
        return f"{self.message} (HTTP {self.status_code})"


class CredentialsError(BitbucketCloudError, ValueError):
    pass


class MissingContextError(BitbucketCloudError, ValueError):
    """A pull request scoped call was made without a repo slug or PR id."""
