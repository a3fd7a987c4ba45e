"""Filesystem uninstall driver."""

from __future__ import annotations

import logging
import shutil
from typing import Any, Dict, Optional

from deploy_agent.domain.errors import DriverError, PackageNotInstalledError
from deploy_agent.domain.options import UninstallOptions
from deploy_agent.domain.status import (
    METRIC_DP_NAME,
    METRIC_JOB_ID,
    METRIC_UNINSTALL_ERROR,
    METRIC_UNINSTALL_PROGRESS,
    METRIC_UNINSTALL_STATUS_DP,
    UNINSTALL_COMPLETED,
    UNINSTALL_FAILED,
    UNINSTALL_IN_PROGRESS,
)

from .notifications import JobNotifier
from .package_installer import RestartCallback
from .package_store import PackageStore


class FilesystemUninstallDriver:
    def __init__(
        self,
        *,
        store: PackageStore,
        notifier: JobNotifier,
        restart_system: Optional[RestartCallback] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._restart_system = restart_system
        self._log = logger or logging.getLogger(__name__)

    def uninstall(self, options: UninstallOptions, package_name: str) -> None:
        package_dir = self._store.package_dir(package_name)
        if self._store.get(package_name) is None and not package_dir.exists():
            raise PackageNotInstalledError(package_name)

        self._notify(options, package_name, UNINSTALL_IN_PROGRESS, 0)
        try:
            shutil.rmtree(package_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise DriverError("uninstall.remove_failed", f"Could not remove {package_dir}", str(exc)) from exc
        self._store.forget(package_name)
        self._log.info("Uninstalled package %s", package_name)
        self._notify(options, package_name, UNINSTALL_COMPLETED, 100)

        if options.reboot and self._restart_system is not None:
            self._log.info("Restart requested in %d ms", options.reboot_delay_ms)
            self._restart_system(options.reboot_delay_ms)

    def uninstall_failed(self, options: UninstallOptions, package_name: str, error: BaseException) -> None:
        self._log.error("Uninstall of %s failed: %s", package_name, error)
        self._notify(options, package_name, UNINSTALL_FAILED, 0, error=str(error) or error.__class__.__name__)

    def _notify(
        self,
        options: UninstallOptions,
        package_name: str,
        status: str,
        progress: int,
        *,
        error: Optional[str] = None,
    ) -> None:
        payload: Dict[str, Any] = {
            METRIC_JOB_ID: options.job_id,
            METRIC_DP_NAME: package_name,
            METRIC_UNINSTALL_STATUS_DP: status,
            METRIC_UNINSTALL_PROGRESS: progress,
        }
        if error:
            payload[METRIC_UNINSTALL_ERROR] = error
        self._notifier.send(options.requester_client_id, payload)


__all__ = ["FilesystemUninstallDriver"]
