"""Exceptions raised by the rename engine and its collaborators."""


class CloudRenameError(Exception):
    """Base class for all cloudrename errors."""


class NetworkError(CloudRenameError):
    """Transport-level failure talking to a provider (connection reset, fetch failure, ...)."""


class ProviderAPIError(CloudRenameError):
    """Error reported by a provider's API, identified by a provider-specific code.

    Codes are kept in whatever form the provider returns them (numeric
    errno for Baidu and Quark, dotted strings for Aliyun).
    """

    def __init__(self, code: int | str, message: str = "", platform: str | None = None) -> None:
        super().__init__(message or f"Provider error {code}")
        self.code = code
        self.message = message
        self.platform = platform

    def __str__(self) -> str:
        prefix = f"[{self.platform}] " if self.platform else ""
        return f"{prefix}{self.args[0]} (code={self.code})"


class InvalidRuleError(CloudRenameError, ValueError):
    """Raised when a naming rule configuration is unknown or malformed."""


class StoreError(CloudRenameError):
    """Raised by a key-value store when a record cannot be read or written."""
