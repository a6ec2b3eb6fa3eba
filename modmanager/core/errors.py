"""Exception and warning types shared across the package."""


class ModManagerError(Exception):
    """Base class for all mod manager errors."""


class ConfigurationError(ModManagerError):
    """Fatal setup problem (missing database file, missing API key, ...)."""


class ModNotFoundError(ModManagerError):
    """The mod or version does not exist for the requested loader/game version."""

    def __init__(self, mod_id: str, reason: str = ""):
        self.mod_id = mod_id
        self.reason = reason
        message = f"'{mod_id}' not found"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ProviderError(ModManagerError):
    """A provider call failed for a reason retrying will not fix."""

    def __init__(self, provider: str, message: str, status_code: int = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}")


class TransientProviderError(ProviderError):
    """Network failure, timeout, HTTP 5xx or 429 after retries ran out."""


class CacheMissError(ProviderError):
    """No cached response exists and the cache is in cached-only mode."""


class DuplicateRecordError(ModManagerError, ValueError):
    """A record with the same ID, Type and Loader already exists."""


class DataIntegrityWarning(UserWarning):
    """A stored RecordHash no longer matches the row (edited outside the tool)."""
