"""Typed errors raised by the deployment core and its collaborators.

Every error carries a stable ``code``, a human-readable ``message`` and an
optional ``hint`` so orchestrators can turn failures into synchronous replies
without leaking collaborator-specific exception types.
"""
from __future__ import annotations


class DeploymentError(RuntimeError):
    """Base class for deployment agent failures."""

    def __init__(self, code: str, message: str, hint: str = "") -> None:
        super().__init__(message)
        self.code = str(code)
        self.message = str(message)
        self.hint = str(hint or "")


class MalformedRequestError(DeploymentError):
    """Request parameters could not be parsed into operation options."""

    def __init__(self, message: str, hint: str = "") -> None:
        super().__init__("request.malformed", message, hint)


class HookConfigurationError(DeploymentError):
    """A hook request type is set but no hook is associated with it."""

    def __init__(self, request_type: str) -> None:
        super().__init__(
            "hook.not_associated",
            f"No DeploymentHook is currently associated to request type {request_type}, aborting operation",
            "Check the hook associations configuration.",
        )
        self.request_type = request_type


class OperationConflictError(DeploymentError):
    """The guard of an operation category is already held."""

    def __init__(self, message: str, token: object = None) -> None:
        super().__init__("operation.conflict", message)
        self.token = token


class DriverError(DeploymentError):
    """A download, install or uninstall driver failed inside a job."""


class DownloadCancelledError(DriverError):
    def __init__(self, url: str) -> None:
        super().__init__("download.cancelled", f"Download of {url} was cancelled")
        self.url = url


class ChecksumMismatchError(DriverError):
    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            "download.checksum_mismatch",
            "Downloaded artifact checksum mismatch",
            f"expected={expected} actual={actual}",
        )


class PackageNotInstalledError(DriverError):
    def __init__(self, name: str) -> None:
        super().__init__("uninstall.not_installed", f"Package {name} is not installed")
        self.name = name


class ModuleLifecycleError(DeploymentError):
    """Starting or stopping a runtime module failed."""

    def __init__(self, module_id: int, message: str) -> None:
        super().__init__("module.lifecycle_failed", message)
        self.module_id = module_id


class ConfigurationError(DeploymentError):
    """Agent settings are missing or invalid."""

    def __init__(self, message: str, hint: str = "") -> None:
        super().__init__("config.invalid", message, hint)


__all__ = [
    "ChecksumMismatchError",
    "ConfigurationError",
    "DeploymentError",
    "DownloadCancelledError",
    "DriverError",
    "HookConfigurationError",
    "MalformedRequestError",
    "ModuleLifecycleError",
    "OperationConflictError",
    "PackageNotInstalledError",
]
