"""Error taxonomy shared by every provider operation.

Each error carries a machine-readable ``code`` next to its human-readable
message so that callers can branch on the kind of failure while still
showing the provider's own wording to the user.
"""

from typing import Optional


class Up2bError(Exception):
    """Base exception for all provider operation errors."""

    code = "UNKNOWN"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        """Serialize the error the way it is reported to callers."""
        return {"code": self.code, "detail": self.message}


class ValidationError(Up2bError):
    """A descriptor or request is incomplete; raised before any network call."""

    code = "VALIDATION"

    def __init__(self, message: str, field_errors: Optional[list] = None):
        super().__init__(message)
        self.field_errors = field_errors or []


class CustomCodeExists(ValidationError):
    """A custom provider code collides with an existing one."""

    code = "CUSTOM_UNIQUE"

    def __init__(self, manager_code: str):
        super().__init__(f"{manager_code} already exists")
        self.manager_code = manager_code


class NetworkError(Up2bError):
    """Transport failure. Never retried automatically."""

    code = "NETWORK"


class DecodeError(Up2bError):
    """The response shape does not match the controller configuration."""

    code = "DECODE"


class ProviderRejected(Up2bError):
    """A structurally valid response that reports a failure."""

    code = "REJECTED"


class DuplicateUpload(ProviderRejected):
    """The provider already stores this image; the detail holds its URL."""

    code = "REPEATED"

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self._url = url

    @property
    def url(self) -> Optional[str]:
        if self._url:
            return self._url
        index = self.message.find("https")
        if index == -1:
            return None
        return self.message[index:]


class AuthError(ProviderRejected):
    """Wrong username or password."""

    code = "AUTH"

    def __init__(self, message: str = "wrong username or password"):
        super().__init__(message)


class SizeExceeded(Up2bError):
    """The file is larger than the provider accepts."""

    code = "OVER_SIZE"

    def __init__(self, provider: str, path: str, max_size: int, file_size: int):
        super().__init__(
            f"{provider} cannot accept this image: path={path}, "
            f"size={file_size} bytes > {max_size} bytes"
        )
        self.provider = provider
        self.path = path
        self.max_size = max_size
        self.file_size = file_size


class UnsupportedFormat(Up2bError):
    """The file extension is not among the provider's allowed formats."""

    code = "UNSUPPORTED_FORMAT"


class ConfigError(Up2bError):
    """The configuration is missing or lacks credentials for a provider."""

    code = "CONFIG"


class CompressionError(Up2bError):
    """The image could not be decoded or re-encoded."""

    code = "COMPRESS"
