"""Download orchestration: single-flight downloads run on the background worker."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from deploy_agent.adapters.artifacts import ArtifactStore
from deploy_agent.domain.errors import HookConfigurationError, MalformedRequestError
from deploy_agent.domain.messages import OperationRequest, OperationResponse
from deploy_agent.domain.options import DownloadOptions
from deploy_agent.domain.ports import (
    DownloadDriver,
    DownloadDriverFactory,
    HookRegistry,
    SecureTransport,
)
from deploy_agent.domain.status import DOWNLOAD_IN_PROGRESS, METRIC_DOWNLOAD_STATUS, RESPONSE_ERROR

from .guard import GuardSnapshot, OperationGuard
from .hooks import PHASE_PRE_DOWNLOAD, HookBinding, invoke_phase, resolve_hook
from .replies import reject_busy
from .worker import BackgroundWorker, JobHandle

AfterDownload = Callable[[DownloadOptions, Optional[HookBinding]], None]


@dataclass
class PendingDownload:
    """The download currently owning the download guard."""

    url: str
    options: DownloadOptions
    driver: DownloadDriver
    hook: Optional[HookBinding] = None
    job: Optional[JobHandle] = None


class DownloadOrchestrator:
    """Accept, run and cancel package downloads, one at a time."""

    def __init__(
        self,
        *,
        worker: BackgroundWorker,
        driver_factory: DownloadDriverFactory,
        artifacts: ArtifactStore,
        hooks: Optional[HookRegistry] = None,
        secure_transport: Optional[SecureTransport] = None,
        verification_dir: Optional[Path] = None,
        after_download: Optional[AfterDownload] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._worker = worker
        self._driver_factory = driver_factory
        self._artifacts = artifacts
        self._hooks = hooks
        self._secure_transport = secure_transport
        self._verification_dir = verification_dir
        self._after_download = after_download
        self._log = logger or logging.getLogger(__name__)
        self.guard: OperationGuard[PendingDownload] = OperationGuard("download")

    # ------------------------------------------------------------------
    # EXEC
    # ------------------------------------------------------------------
    def execute(self, request: OperationRequest, response: OperationResponse) -> None:
        try:
            options = DownloadOptions.from_params(request.option_params())
        except MalformedRequestError as exc:
            self._log.info("Malformed download request: %s", exc)
            response.fail(RESPONSE_ERROR, "Malformed download request", exc)
            return

        try:
            hook = resolve_hook(self._hooks, options, self._artifacts.path_for(options), request.params)
        except HookConfigurationError as exc:
            self._log.warning(exc.message)
            response.fail(RESPONSE_ERROR, exc.message, exc)
            return

        if self.guard.held:
            self._reject_in_progress(response, options)
            return

        try:
            driver = self._driver_factory(options)
        except ValueError as exc:
            self._log.info("Malformed download request: %s", exc)
            response.fail(RESPONSE_ERROR, "Malformed download request", exc)
            return

        try:
            already_downloaded = driver.is_already_downloaded()
        except Exception as exc:
            self._log.warning("Error checking download status of %s", options.uri, exc_info=True)
            response.fail(RESPONSE_ERROR, "Error checking download status", exc)
            return
        if options.force:
            already_downloaded = False

        try:
            invoke_phase(hook, PHASE_PRE_DOWNLOAD)
        except Exception as exc:
            response.fail(RESPONSE_ERROR, str(exc) or "Download rejected by deployment hook", exc)
            return

        pending = PendingDownload(url=options.uri, options=options, driver=driver, hook=hook)
        if not self.guard.try_acquire(options.uri, pending):
            self._reject_in_progress(response, options)
            return

        try:
            driver.configure(
                verification_dir=self._verification_dir,
                secure_transport=self._secure_transport,
                already_downloaded=already_downloaded,
            )
            pending.job = self._worker.submit(
                f"download:{options.uri}",
                lambda: self._run(pending),
                on_skip=lambda: self._skipped(pending),
            )
        except Exception as exc:
            self.guard.release(options.uri)
            self._log.error("Could not start download of %s: %s", options.uri, exc)
            response.fail(RESPONSE_ERROR, str(exc) or "Could not start download", exc)
            return

        self._log.info("Downloading package from URL: %s", options.uri)

    def _reject_in_progress(self, response: OperationResponse, options: DownloadOptions) -> None:
        self._log.info("Rejected download of %s, another resource is already in download", options.uri)
        reject_busy(response, "Another resource is already in download", METRIC_DOWNLOAD_STATUS, DOWNLOAD_IN_PROGRESS)

    def _run(self, pending: PendingDownload) -> None:
        options = pending.options
        try:
            pending.driver.download()
            if options.install and self._after_download is not None:
                self._after_download(options, pending.hook)
        except Exception:
            self._log.warning("Download of %s failed", options.uri, exc_info=True)
            self._artifacts.discard(options)
        finally:
            self.guard.release(pending.url)

    def _skipped(self, pending: PendingDownload) -> None:
        self._log.info("Download of %s cancelled before it started", pending.url)
        self.guard.release(pending.url)

    # ------------------------------------------------------------------
    # DELETE
    # ------------------------------------------------------------------
    def cancel(self, request: OperationRequest, response: OperationResponse) -> None:
        """Cancel the pending download; without one this is a successful no-op."""
        pending = self.guard.descriptor
        if pending is None:
            self._log.info("No pending download to cancel")
            return
        try:
            pending.driver.cancel()
            pending.driver.delete_downloaded_file()
        except Exception as exc:
            self._log.warning("Error cancelling download of %s", pending.url, exc_info=True)
            response.fail(RESPONSE_ERROR, "Error cancelling download!", exc)
            return
        self._log.info("Cancelled download of %s", pending.url)

    # ------------------------------------------------------------------
    # Status / lifecycle
    # ------------------------------------------------------------------
    def snapshot(self) -> GuardSnapshot[PendingDownload]:
        return self.guard.snapshot()

    def shutdown(self) -> None:
        """Cancel the in-flight driver and its job handle, if any."""
        pending = self.guard.descriptor
        if pending is None:
            return
        if pending.job is not None:
            pending.job.cancel()
        try:
            pending.driver.cancel()
        except Exception:
            self._log.warning("Could not cancel download of %s on shutdown", pending.url, exc_info=True)


__all__ = ["DownloadOrchestrator", "PendingDownload"]
