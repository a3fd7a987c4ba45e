"""Install orchestration over the guard shared with uninstall."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from deploy_agent.adapters.artifacts import ArtifactStore
from deploy_agent.domain.errors import (
    HookConfigurationError,
    MalformedRequestError,
    OperationConflictError,
)
from deploy_agent.domain.messages import OperationRequest, OperationResponse
from deploy_agent.domain.options import DownloadOptions, InstallOptions
from deploy_agent.domain.ports import HookRegistry, InstallDriver
from deploy_agent.domain.status import INSTALL_IN_PROGRESS, METRIC_INSTALL_STATUS, RESPONSE_ERROR

from .guard import GuardSnapshot, OperationGuard
from .hooks import PHASE_POST_DOWNLOAD, PHASE_POST_INSTALL, HookBinding, invoke_phase, resolve_hook
from .replies import reject_busy
from .worker import BackgroundWorker

BUSY_BODY = "Already installing/uninstalling"

# descriptor of the shared guard: install options, or the name of a package being removed
InstallSlot = Union[InstallOptions, str]


def install_token(options: InstallOptions) -> str:
    return f"install:{options.name}-{options.version}"


class InstallOrchestrator:
    """Install downloaded artifacts on the background worker."""

    def __init__(
        self,
        *,
        worker: BackgroundWorker,
        guard: OperationGuard[InstallSlot],
        driver: InstallDriver,
        artifacts: ArtifactStore,
        hooks: Optional[HookRegistry] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._worker = worker
        self.guard = guard
        self._driver = driver
        self._artifacts = artifacts
        self._hooks = hooks
        self._log = logger or logging.getLogger(__name__)

    def execute(self, request: OperationRequest, response: OperationResponse) -> None:
        try:
            options = InstallOptions.from_params(request.option_params())
        except MalformedRequestError as exc:
            self._log.info("Malformed install request: %s", exc.hint or exc.message)
            response.fail(RESPONSE_ERROR, "Malformed install request", exc)
            return

        artifact = self._artifacts.path_for(options)
        try:
            hook = resolve_hook(self._hooks, options, artifact, request.params)
        except HookConfigurationError as exc:
            self._log.warning(exc.message)
            response.fail(RESPONSE_ERROR, exc.message, exc)
            return

        try:
            downloaded = self._artifacts.is_downloaded(options)
        except Exception as exc:
            self._log.warning("Error checking download status of %s", artifact.name, exc_info=True)
            response.fail(RESPONSE_ERROR, "Error checking download status", exc)
            return

        if self.guard.held:
            self._reject_busy(response, options)
            return
        if not downloaded:
            self._log.info("Rejected install of %s, artifact not downloaded", artifact.name)
            response.fail(RESPONSE_ERROR, BUSY_BODY)
            return

        try:
            invoke_phase(hook, PHASE_POST_DOWNLOAD)
        except Exception as exc:
            response.fail(RESPONSE_ERROR, "Exception during install", exc)
            return

        token = install_token(options)
        if not self.guard.try_acquire(token, options):
            self._reject_busy(response, options)
            return
        try:
            self._worker.submit(
                f"install:{artifact.name}",
                lambda: self._run(token, options, artifact, hook),
                on_skip=lambda: self._skipped(token, artifact),
            )
        except Exception as exc:
            self.guard.release(token)
            self._log.error("Could not start install of %s: %s", artifact.name, exc)
            response.fail(RESPONSE_ERROR, "Exception during install", exc)
            return
        self._log.info("Installing package %s", artifact.name)

    def _reject_busy(self, response: OperationResponse, options: InstallOptions) -> None:
        self._log.info("Rejected install of %s-%s, %s", options.name, options.version, BUSY_BODY)
        reject_busy(response, BUSY_BODY, METRIC_INSTALL_STATUS, INSTALL_IN_PROGRESS)

    def _run(self, token: str, options: InstallOptions, artifact: Path, hook: Optional[HookBinding]) -> None:
        try:
            self._install_downloaded_file(options, artifact, hook)
        finally:
            self.guard.release(token)

    def _skipped(self, token: str, artifact: Path) -> None:
        self._log.info("Install of %s cancelled before it started", artifact.name)
        self.guard.release(token)

    def install_after_download(self, options: DownloadOptions, hook: Optional[HookBinding]) -> None:
        """Install a freshly downloaded artifact; runs inside the download job."""
        install_options = options.install_options()
        artifact = self._artifacts.path_for(install_options)
        token = install_token(install_options)
        if not self.guard.try_acquire(token, install_options):
            self._log.warning("Cannot install %s after download, %s", artifact.name, BUSY_BODY)
            self._report_failure(install_options, artifact, OperationConflictError(BUSY_BODY, self.guard.token))
            return
        try:
            try:
                invoke_phase(hook, PHASE_POST_DOWNLOAD)
            except Exception as exc:
                self._report_failure(install_options, artifact, exc)
                return
            self._install_downloaded_file(install_options, artifact, hook)
        finally:
            self.guard.release(token)

    def _install_downloaded_file(self, options: InstallOptions, artifact: Path, hook: Optional[HookBinding]) -> None:
        try:
            if options.system_update:
                self._driver.install_system_update(options, artifact)
            else:
                self._driver.install_package(options, artifact)
            invoke_phase(hook, PHASE_POST_INSTALL)
        except Exception as exc:
            self._log.warning("Install of %s failed", artifact.name, exc_info=True)
            self._report_failure(options, artifact, exc)
            self._artifacts.discard(options)

    def _report_failure(self, options: InstallOptions, artifact: Path, error: BaseException) -> None:
        try:
            self._driver.install_failed(options, artifact.name, error)
        except Exception:
            self._log.exception("Could not report install failure of %s", artifact.name)

    def snapshot(self) -> GuardSnapshot[InstallSlot]:
        return self.guard.snapshot()


__all__ = ["BUSY_BODY", "InstallOrchestrator", "InstallSlot", "install_token"]
