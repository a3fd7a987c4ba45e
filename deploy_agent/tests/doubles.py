"""Collaborator doubles shared by the orchestration tests.

Drivers block on ``threading.Event`` gates so tests can observe a job while it
is running and then let it finish deterministically.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from deploy_agent.config import AgentSettings
from deploy_agent.core.agent import DeploymentAgent
from deploy_agent.domain.errors import DownloadCancelledError
from deploy_agent.domain.messages import Notification
from deploy_agent.domain.options import DownloadOptions, InstallOptions, UninstallOptions
from deploy_agent.domain.ports import HookRequestContext

GATE_TIMEOUT_S = 5.0


def download_params(**overrides: Any) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "dp.uri": "http://repo.example/pkg-1.0.dp",
        "dp.name": "pkg",
        "dp.version": "1.0",
        "job.id": 7,
        "dp.install": False,
    }
    params.update(overrides)
    return params


def install_params(**overrides: Any) -> Dict[str, Any]:
    params: Dict[str, Any] = {"dp.name": "pkg", "dp.version": "1.0", "job.id": 8}
    params.update(overrides)
    return params


def uninstall_params(**overrides: Any) -> Dict[str, Any]:
    params: Dict[str, Any] = {"dp.name": "pkg", "job.id": 9}
    params.update(overrides)
    return params


class RecordingPublisher:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.items: List[Notification] = []

    def publish(self, notification: Notification) -> None:
        with self._lock:
            self.items.append(notification)


class GatedDownloadDriver:
    """Download driver double; ``download()`` blocks until ``gate`` is set."""

    def __init__(
        self,
        options: DownloadOptions,
        *,
        gate: threading.Event,
        artifact_dir: Path,
        downloaded_result: bool = False,
        status_error: Optional[BaseException] = None,
        download_error: Optional[BaseException] = None,
        cancel_error: Optional[BaseException] = None,
    ) -> None:
        self.options = options
        self.gate = gate
        self.artifact_dir = artifact_dir
        self.downloaded_result = downloaded_result
        self.status_error = status_error
        self.download_error = download_error
        self.cancel_error = cancel_error
        self.started = threading.Event()
        self.finished = threading.Event()
        self.cancelled = threading.Event()
        self.deleted = False
        self.configured: Optional[Dict[str, Any]] = None
        self.transferred_bytes = 512
        self.total_bytes = 1024
        self.progress_pct = 50

    def is_already_downloaded(self) -> bool:
        if self.status_error is not None:
            raise self.status_error
        return self.downloaded_result

    def configure(self, *, verification_dir, secure_transport, already_downloaded) -> None:
        self.configured = {
            "verification_dir": verification_dir,
            "secure_transport": secure_transport,
            "already_downloaded": already_downloaded,
        }

    def download(self) -> Path:
        self.started.set()
        try:
            self.gate.wait(GATE_TIMEOUT_S)
            if self.cancelled.is_set():
                raise DownloadCancelledError(self.options.uri)
            if self.download_error is not None:
                raise self.download_error
            self.artifact_dir.mkdir(parents=True, exist_ok=True)
            path = self.artifact_dir / self.options.artifact_name
            path.write_bytes(b"payload")
            return path
        finally:
            self.finished.set()

    def cancel(self) -> None:
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.set()
        self.gate.set()

    def delete_downloaded_file(self) -> None:
        self.deleted = True


class GatedDriverFactory:
    """Build :class:`GatedDownloadDriver` instances and remember them."""

    def __init__(self, artifact_dir: Path, **driver_kwargs: Any) -> None:
        self.artifact_dir = artifact_dir
        self.gate = threading.Event()
        self.driver_kwargs = driver_kwargs
        self.drivers: List[GatedDownloadDriver] = []

    def __call__(self, options: DownloadOptions) -> GatedDownloadDriver:
        driver = GatedDownloadDriver(options, gate=self.gate, artifact_dir=self.artifact_dir, **self.driver_kwargs)
        self.drivers.append(driver)
        return driver

    @property
    def last(self) -> GatedDownloadDriver:
        return self.drivers[-1]


class RecordingInstallDriver:
    def __init__(self, *, gate: Optional[threading.Event] = None, error: Optional[BaseException] = None) -> None:
        self.gate = gate
        self.error = error
        self.started = threading.Event()
        self.calls: List[Tuple[str, str, Path]] = []
        self.failures: List[Tuple[str, str, BaseException]] = []

    def _run(self, kind: str, options: InstallOptions, artifact: Path) -> None:
        self.calls.append((kind, options.name, artifact))
        self.started.set()
        if self.gate is not None:
            self.gate.wait(GATE_TIMEOUT_S)
        if self.error is not None:
            raise self.error

    def install_package(self, options: InstallOptions, artifact: Path) -> None:
        self._run("package", options, artifact)

    def install_system_update(self, options: InstallOptions, artifact: Path) -> None:
        self._run("system_update", options, artifact)

    def install_failed(self, options: InstallOptions, file_name: str, error: BaseException) -> None:
        self.failures.append((options.name, file_name, error))


class RecordingUninstallDriver:
    def __init__(self, *, gate: Optional[threading.Event] = None, error: Optional[BaseException] = None) -> None:
        self.gate = gate
        self.error = error
        self.started = threading.Event()
        self.calls: List[str] = []
        self.failures: List[Tuple[str, BaseException]] = []

    def uninstall(self, options: UninstallOptions, package_name: str) -> None:
        self.calls.append(package_name)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(GATE_TIMEOUT_S)
        if self.error is not None:
            raise self.error

    def uninstall_failed(self, options: UninstallOptions, package_name: str, error: BaseException) -> None:
        self.failures.append((package_name, error))


class RecordingHook:
    """Deployment hook recording its phases; raises in the phases listed in ``fail_on``."""

    def __init__(self, *fail_on: str) -> None:
        self.fail_on = set(fail_on)
        self.calls: List[Tuple[str, HookRequestContext, Mapping[str, Any]]] = []

    def _record(self, phase: str, context: HookRequestContext, properties: Mapping[str, Any]) -> None:
        self.calls.append((phase, context, properties))
        if phase in self.fail_on:
            raise RuntimeError(f"hook vetoed {phase}")

    def pre_download(self, context, properties) -> None:
        self._record("preDownload", context, properties)

    def post_download(self, context, properties) -> None:
        self._record("postDownload", context, properties)

    def post_install(self, context, properties) -> None:
        self._record("postInstall", context, properties)

    @property
    def phases(self) -> List[str]:
        return [phase for phase, _, _ in self.calls]


def make_agent(
    tmp_path: Path,
    *,
    factory: Optional[GatedDriverFactory] = None,
    install_driver: Optional[RecordingInstallDriver] = None,
    uninstall_driver: Optional[RecordingUninstallDriver] = None,
    **kwargs: Any,
) -> Tuple[DeploymentAgent, GatedDriverFactory, RecordingInstallDriver, RecordingUninstallDriver]:
    settings = AgentSettings.for_data_dir(tmp_path / "agent", client_id="device-1")
    factory = factory or GatedDriverFactory(settings.downloads_dir)
    install_driver = install_driver or RecordingInstallDriver()
    uninstall_driver = uninstall_driver or RecordingUninstallDriver()
    agent = DeploymentAgent(
        settings,
        driver_factory=factory,
        install_driver=install_driver,
        uninstall_driver=uninstall_driver,
        **kwargs,
    )
    agent.activate()
    return agent, factory, install_driver, uninstall_driver


def write_artifact(agent: DeploymentAgent, params: Mapping[str, Any], content: bytes = b"payload") -> Path:
    options = InstallOptions.from_params(params)
    path = agent.artifacts.path_for(options)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path
