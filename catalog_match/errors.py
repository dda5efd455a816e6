from __future__ import annotations


class CatalogError(Exception):
    """Base class for failures talking to the remote catalog."""


class TransientRemoteFailure(CatalogError):
    """Network timeout or rate-limit response; worth retrying."""


class RemoteUnavailable(CatalogError):
    """Transient failures persisted past the retry budget."""

    def __init__(self, label: str, last_error: Exception | None = None) -> None:
        message = f"{label} unavailable"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.label = label
        self.last_error = last_error


class ConfigurationFatal(CatalogError):
    """Credentials or client configuration rejected; nothing can be resolved."""


class OperationAborted(CatalogError):
    """The abort signal was raised before a new remote call was issued."""


class InvalidLocalInput(ValueError):
    """A folder name that cannot be parsed into anything searchable."""
