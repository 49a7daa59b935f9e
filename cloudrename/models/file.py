"""File, rename result and platform configuration models."""

import asyncio
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from cloudrename.errors import NetworkError, ProviderAPIError


def split_name(file_name: str) -> tuple[str, str]:
    """Split a file name into (stem, extension).

    The extension includes the leading dot. Names without a dot, hidden
    files such as ``.env`` and names ending in a dot have no extension.
    """
    dot = file_name.rfind(".")
    if dot <= 0 or dot == len(file_name) - 1:
        return file_name, ""
    return file_name[:dot], file_name[dot:]


class FileItem(BaseModel):
    """A file as listed by a platform adapter.

    Identity is ``id``; ``name`` and ``ext`` are display data that go stale
    once a rename succeeds.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider-specific stable identifier")
    name: str = Field(description="File name including extension")
    ext: str = Field(default="", description="Extension including the dot, e.g. '.mp4'")
    parent_id: str = Field(default="", description="Identifier of the containing folder")
    size: int = Field(default=0, description="Size in bytes")
    mtime: float = Field(default=0, description="Modification timestamp (epoch milliseconds)")

    @classmethod
    def from_name(cls, id: str, name: str, parent_id: str = "", size: int = 0, mtime: float = 0) -> "FileItem":
        """Create a FileItem, deriving ``ext`` from ``name``."""
        return cls(id=id, name=name, ext=split_name(name)[1], parent_id=parent_id, size=size, mtime=mtime)

    def __str__(self) -> str:
        return f"FileItem(id='{self.id}', name='{self.name}')"


class ErrorKind(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    API = "api"
    NAME_MISMATCH = "name_mismatch"
    UNKNOWN = "unknown"


class ErrorInfo(BaseModel):
    """Serialisable description of why a rename attempt failed."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    message: str = ""
    code: int | str | None = None
    platform: str | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorInfo":
        """Describe a raised exception."""
        if isinstance(exc, ProviderAPIError):
            return cls(kind=ErrorKind.API, message=exc.message or str(exc), code=exc.code, platform=exc.platform)
        if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
            return cls(kind=ErrorKind.TIMEOUT, message=str(exc) or "Request timed out")
        if isinstance(exc, (NetworkError, ConnectionError)):
            return cls(kind=ErrorKind.NETWORK, message=str(exc) or "Network error")
        return cls(kind=ErrorKind.UNKNOWN, message=str(exc) or type(exc).__name__)

    def __str__(self) -> str:
        if self.code is not None:
            return f"{self.message} (code={self.code})"
        return self.message


class RenameResult(BaseModel):
    """Outcome of a single rename attempt."""

    success: bool
    new_name: str | None = None
    error: ErrorInfo | None = None
    skipped: bool = False
    reason: str | None = None

    @classmethod
    def failure(cls, error: ErrorInfo | BaseException, reason: str | None = None) -> "RenameResult":
        if isinstance(error, BaseException):
            error = ErrorInfo.from_exception(error)
        return cls(success=False, error=error, reason=reason)

    @property
    def error_message(self) -> str:
        return str(self.error) if self.error else "Unknown error"


class PlatformConfig(BaseModel):
    """Provider-specific request settings exposed by an adapter."""

    platform: str = "local"
    request_interval: float = Field(default=0.8, ge=0, description="Minimum seconds between API calls")
    max_retries: int = Field(default=3, ge=1, description="Maximum attempts per rename")
    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")
