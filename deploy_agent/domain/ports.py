from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Protocol, Union

from pydantic import BaseModel

from .documents import ModuleInfo, PackageInfo
from .messages import Notification
from .options import DownloadOptions, InstallOptions, UninstallOptions


@dataclass(frozen=True)
class HookRequestContext:
    """Context handed to every hook callback of one request."""

    download_path: str
    request_type: str


# ---- Ports (Hexagonal boundaries) ----
class DeploymentHook(Protocol):
    """Extension invoked around download and install; raising vetoes the operation."""

    def pre_download(self, context: HookRequestContext, properties: Mapping[str, Any]) -> None: ...
    def post_download(self, context: HookRequestContext, properties: Mapping[str, Any]) -> None: ...
    def post_install(self, context: HookRequestContext, properties: Mapping[str, Any]) -> None: ...


class HookRegistry(Protocol):
    """Resolve hooks by request type."""

    def resolve(self, request_type: str) -> Optional[DeploymentHook]: ...
    def update_associations(self, associations: Mapping[str, str]) -> None: ...


class NotificationPublisher(Protocol):
    """Asynchronous outbound channel used by drivers to self-report."""

    def publish(self, notification: Notification) -> None: ...


class SecureTransport(Protocol):
    """TLS material for authenticated downloads (``requests`` verify/cert)."""

    @property
    def verify(self) -> Union[bool, str]: ...
    @property
    def cert(self) -> Optional[Union[str, tuple]]: ...


class DownloadDriver(Protocol):
    """Performs one package transfer and reports its own outcome."""

    @property
    def transferred_bytes(self) -> int: ...
    @property
    def total_bytes(self) -> int: ...
    @property
    def progress_pct(self) -> int: ...

    def is_already_downloaded(self) -> bool: ...
    def configure(
        self,
        *,
        verification_dir: Optional[Path],
        secure_transport: Optional[SecureTransport],
        already_downloaded: bool,
    ) -> None: ...
    def download(self) -> Path: ...  # blocking, returns the artifact path
    def cancel(self) -> None: ...
    def delete_downloaded_file(self) -> None: ...


DownloadDriverFactory = Callable[[DownloadOptions], DownloadDriver]


class InstallDriver(Protocol):
    """Applies downloaded artifacts and reports its own outcome."""

    def install_package(self, options: InstallOptions, artifact: Path) -> None: ...
    def install_system_update(self, options: InstallOptions, artifact: Path) -> None: ...
    def install_failed(self, options: InstallOptions, file_name: str, error: BaseException) -> None: ...


class UninstallDriver(Protocol):
    def uninstall(self, options: UninstallOptions, package_name: str) -> None: ...
    def uninstall_failed(self, options: UninstallOptions, package_name: str, error: BaseException) -> None: ...


class PackageInventory(Protocol):
    def list_packages(self) -> List[PackageInfo]: ...


class ModuleRegistry(Protocol):
    """Enumerate and control individually addressable runtime modules."""

    def list_modules(self) -> List[ModuleInfo]: ...
    def get_module(self, module_id: int) -> Optional[ModuleInfo]: ...
    def start_module(self, module_id: int) -> None: ...
    def stop_module(self, module_id: int) -> None: ...


class DocumentMarshaller(Protocol):
    def marshal(self, document: BaseModel) -> str: ...


__all__ = [
    "DeploymentHook",
    "DocumentMarshaller",
    "DownloadDriver",
    "DownloadDriverFactory",
    "HookRegistry",
    "HookRequestContext",
    "InstallDriver",
    "ModuleRegistry",
    "NotificationPublisher",
    "PackageInventory",
    "SecureTransport",
    "UninstallDriver",
]
