"""Filesystem install driver for deployment packages and system updates."""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import tempfile
import uuid
import zipfile
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List, Optional

from deploy_agent.domain.documents import ComponentInfo, PackageInfo
from deploy_agent.domain.errors import DriverError
from deploy_agent.domain.options import InstallOptions
from deploy_agent.domain.status import (
    INSTALL_COMPLETED,
    INSTALL_FAILED,
    INSTALL_IN_PROGRESS,
    METRIC_DP_NAME,
    METRIC_DP_VERSION,
    METRIC_INSTALL_ERROR,
    METRIC_INSTALL_PROGRESS,
    METRIC_INSTALL_STATUS_DP,
    METRIC_JOB_ID,
)

from .http_download import verifier_path
from .notifications import JobNotifier
from .package_store import PackageStore

MANIFEST_NAME = "manifest.json"
BACKUP_DIRNAME = ".backup"
DEFAULT_SCRIPT_TIMEOUT_S = 600

RestartCallback = Callable[[int], None]


def secure_extract_archive(archive_path: Path, destination: Path) -> None:
    """Extract ZIP safely and prevent path traversal or symlink escapes."""
    destination_root = destination.resolve()
    try:
        with zipfile.ZipFile(archive_path, "r") as archive:
            for entry in archive.infolist():
                name = entry.filename.replace("\\", "/")
                if not name:
                    continue
                pure = PurePosixPath(name)
                if pure.is_absolute() or any(part in ("", "..") for part in pure.parts):
                    raise DriverError("install.unsafe_archive", "Unsafe ZIP entry path detected", name)
                mode = (entry.external_attr >> 16) & 0o170000
                if mode == 0o120000:
                    raise DriverError("install.unsafe_archive", "ZIP archive contains symlink entry", name)
                resolved_target = (destination / pure.as_posix()).resolve()
                if destination_root not in (resolved_target, *resolved_target.parents):
                    raise DriverError("install.unsafe_archive", "ZIP entry escaped extraction directory", name)
                if entry.is_dir():
                    resolved_target.mkdir(parents=True, exist_ok=True)
                    continue
                resolved_target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(entry, "r") as source, resolved_target.open("wb") as handle:
                    shutil.copyfileobj(source, handle)
    except zipfile.BadZipFile as exc:
        raise DriverError(
            "install.invalid_archive",
            f"Invalid deployment package {archive_path.name}",
            f"Could not open ZIP archive: {exc}",
        ) from exc


def replace_directory_atomically(*, source_dir: Path, target_dir: Path, backup_dir: Path) -> None:
    """Replace ``target_dir`` with ``source_dir`` using atomic renames.

    The previous content is copied to ``backup_dir`` first and restored if the
    swap fails.
    """
    target_dir.parent.mkdir(parents=True, exist_ok=True)
    backup_dir.parent.mkdir(parents=True, exist_ok=True)
    work_id = uuid.uuid4().hex
    incoming_dir = target_dir.parent / f".{target_dir.name}.incoming-{work_id}"
    displaced_dir = target_dir.parent / f".{target_dir.name}.displaced-{work_id}"

    shutil.rmtree(incoming_dir, ignore_errors=True)
    shutil.copytree(source_dir, incoming_dir)

    target_existed = target_dir.exists()
    if target_existed:
        shutil.rmtree(backup_dir, ignore_errors=True)
        shutil.copytree(target_dir, backup_dir)

    try:
        if target_existed:
            os.replace(target_dir, displaced_dir)
        os.replace(incoming_dir, target_dir)
    except OSError as exc:
        shutil.rmtree(target_dir, ignore_errors=True)
        if displaced_dir.exists():
            os.replace(displaced_dir, target_dir)
        elif backup_dir.exists():
            shutil.copytree(backup_dir, target_dir)
        raise DriverError("install.replace_failed", "Atomic package replacement failed", str(exc)) from exc
    finally:
        shutil.rmtree(incoming_dir, ignore_errors=True)
        shutil.rmtree(displaced_dir, ignore_errors=True)


def read_components(package_root: Path, default_version: str) -> List[ComponentInfo]:
    """Components from ``manifest.json`` when present, else the top-level entries.

    The manifest may list components as ``[{"name", "version"}]`` or as a
    ``{name: version}`` object.
    """
    manifest_path = package_root / MANIFEST_NAME
    if manifest_path.is_file():
        try:
            payload = json.loads(manifest_path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise DriverError("install.manifest_invalid", "manifest.json is invalid JSON", str(exc)) from exc
        raw = payload.get("components") if isinstance(payload, dict) else None
        if isinstance(raw, dict):
            return [ComponentInfo(name=str(name), version=str(version)) for name, version in raw.items()]
        if isinstance(raw, list):
            return [
                ComponentInfo(name=str(item["name"]), version=str(item.get("version") or default_version))
                for item in raw
                if isinstance(item, dict) and item.get("name")
            ]
        raise DriverError(
            "install.manifest_invalid",
            "manifest.json has no components",
            "Provide a components list or object.",
        )
    return [
        ComponentInfo(name=entry.name, version=default_version)
        for entry in sorted(package_root.iterdir(), key=lambda path: path.name)
        if entry.name != MANIFEST_NAME
    ]


class FilesystemInstallDriver:
    """Install ``.dp`` archives into the packages directory and run ``.sh`` updates."""

    def __init__(
        self,
        *,
        store: PackageStore,
        notifier: JobNotifier,
        verification_dir: Optional[Path] = None,
        restart_system: Optional[RestartCallback] = None,
        script_timeout_s: int = DEFAULT_SCRIPT_TIMEOUT_S,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._verification_dir = Path(verification_dir) if verification_dir else None
        self._restart_system = restart_system
        self._script_timeout_s = script_timeout_s
        self._log = logger or logging.getLogger(__name__)

    def install_package(self, options: InstallOptions, artifact: Path) -> None:
        self._notify(options, INSTALL_IN_PROGRESS, 0)
        target_dir = self._store.package_dir(options.name)
        self._store.packages_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=".staging-", dir=self._store.packages_dir) as staging:
            staging_dir = Path(staging)
            secure_extract_archive(artifact, staging_dir)
            components = read_components(staging_dir, options.version)
            self._notify(options, INSTALL_IN_PROGRESS, 50)
            replace_directory_atomically(
                source_dir=staging_dir,
                target_dir=target_dir,
                backup_dir=self._store.packages_dir / BACKUP_DIRNAME / options.name,
            )
        self._store.record(PackageInfo(name=options.name, version=options.version, components=tuple(components)))
        self._log.info("Installed package %s %s into %s", options.name, options.version, target_dir)
        self._notify(options, INSTALL_COMPLETED, 100)
        self._maybe_restart(options)

    def install_system_update(self, options: InstallOptions, artifact: Path) -> None:
        self._notify(options, INSTALL_IN_PROGRESS, 0)
        self._run_script(artifact, "install.script_failed", "System update script failed")
        if self._verification_dir is not None:
            verifier = verifier_path(self._verification_dir, options.name, options.version)
            if verifier.is_file():
                self._notify(options, INSTALL_IN_PROGRESS, 50)
                self._run_script(verifier, "install.verification_failed", "System update verification failed")
        self._log.info("Applied system update %s", artifact.name)
        self._notify(options, INSTALL_COMPLETED, 100)
        self._maybe_restart(options)

    def install_failed(self, options: InstallOptions, file_name: str, error: BaseException) -> None:
        self._log.error("Install of %s failed: %s", file_name, error)
        self._notify(options, INSTALL_FAILED, 0, error=str(error) or error.__class__.__name__)

    def _run_script(self, script: Path, code: str, message: str) -> None:
        self._log.info("Running %s", script)
        try:
            result = subprocess.run(
                ["sh", str(script)],
                capture_output=True,
                text=True,
                timeout=self._script_timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise DriverError(code, message, str(exc)) from exc
        if result.stdout:
            self._log.debug("%s stdout: %s", script.name, result.stdout.strip())
        if result.returncode != 0:
            raise DriverError(code, message, f"exit={result.returncode} {result.stderr.strip()[-400:]}")

    def _maybe_restart(self, options: InstallOptions) -> None:
        if options.reboot and self._restart_system is not None:
            self._log.info("Restart requested in %d ms", options.reboot_delay_ms)
            self._restart_system(options.reboot_delay_ms)

    def _notify(self, options: InstallOptions, status: str, progress: int, *, error: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {
            METRIC_JOB_ID: options.job_id,
            METRIC_DP_NAME: options.name,
            METRIC_DP_VERSION: options.version,
            METRIC_INSTALL_STATUS_DP: status,
            METRIC_INSTALL_PROGRESS: progress,
        }
        if error:
            payload[METRIC_INSTALL_ERROR] = error
        self._notifier.send(options.requester_client_id, payload)


__all__ = [
    "FilesystemInstallDriver",
    "MANIFEST_NAME",
    "RestartCallback",
    "read_components",
    "replace_directory_atomically",
    "secure_extract_archive",
]
