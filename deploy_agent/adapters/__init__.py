"""Default collaborators: drivers, stores, registries and the notification outbox."""

from .artifacts import ArtifactStore
from .hook_registry import DeploymentHookManager
from .http_download import HttpDownloadDriver, HttpDownloadDriverFactory
from .marshalling import JsonDocumentMarshaller
from .module_registry import InMemoryModuleRegistry
from .notifications import JobNotifier, NotificationOutbox
from .package_installer import FilesystemInstallDriver
from .package_store import PackageStore
from .package_uninstaller import FilesystemUninstallDriver
from .tls import TlsSettings

__all__ = [
    "ArtifactStore",
    "DeploymentHookManager",
    "FilesystemInstallDriver",
    "FilesystemUninstallDriver",
    "HttpDownloadDriver",
    "HttpDownloadDriverFactory",
    "InMemoryModuleRegistry",
    "JobNotifier",
    "JsonDocumentMarshaller",
    "NotificationOutbox",
    "PackageStore",
    "TlsSettings",
]
