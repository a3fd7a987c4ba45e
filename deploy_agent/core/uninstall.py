"""Uninstall orchestration over the guard shared with install."""

from __future__ import annotations

import logging
from typing import Optional

from deploy_agent.domain.errors import MalformedRequestError
from deploy_agent.domain.messages import OperationRequest, OperationResponse
from deploy_agent.domain.options import UninstallOptions
from deploy_agent.domain.ports import UninstallDriver
from deploy_agent.domain.status import METRIC_UNINSTALL_STATUS, RESPONSE_ERROR, UNINSTALL_IN_PROGRESS

from .guard import OperationGuard
from .install import InstallSlot
from .replies import reject_busy
from .worker import BackgroundWorker

BUSY_BODY = "Only one request at a time is allowed"


class UninstallOrchestrator:
    """Remove installed packages on the background worker.

    The uninstall job is the single owner of the guard slot it acquires: the
    job releases it when it ends or is skipped, the request path only when
    submitting the job fails.
    """

    def __init__(
        self,
        *,
        worker: BackgroundWorker,
        guard: OperationGuard[InstallSlot],
        driver: UninstallDriver,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._worker = worker
        self.guard = guard
        self._driver = driver
        self._log = logger or logging.getLogger(__name__)

    @property
    def tracked_package(self) -> Optional[str]:
        """Name of the package being removed, if an uninstall is running."""
        descriptor = self.guard.descriptor
        return descriptor if isinstance(descriptor, str) else None

    def execute(self, request: OperationRequest, response: OperationResponse) -> None:
        try:
            options = UninstallOptions.from_params(request.option_params())
        except MalformedRequestError as exc:
            self._log.info("Malformed uninstall request: %s", exc.hint or exc.message)
            response.fail(RESPONSE_ERROR, "Malformed uninstall request", exc)
            return

        token = f"uninstall:{options.name}"
        if not self.guard.try_acquire(token, options.name):
            self._log.info("Rejected uninstall of %s, %s", options.name, BUSY_BODY)
            reject_busy(response, BUSY_BODY, METRIC_UNINSTALL_STATUS, UNINSTALL_IN_PROGRESS)
            return

        self._log.info("About to uninstall package %s", options.name)
        try:
            self._worker.submit(
                f"uninstall:{options.name}",
                lambda: self._run(token, options),
                on_skip=lambda: self.guard.release(token),
            )
        except Exception as exc:
            self.guard.release(token)
            self._log.error("Could not start uninstall of %s: %s", options.name, exc)
            response.fail(RESPONSE_ERROR, str(exc) or "Could not start uninstall", exc)

    def _run(self, token: str, options: UninstallOptions) -> None:
        try:
            self._driver.uninstall(options, options.name)
        except Exception as exc:
            self._log.warning("Uninstall of %s failed", options.name, exc_info=True)
            try:
                self._driver.uninstall_failed(options, options.name, exc)
            except Exception:
                self._log.exception("Could not report uninstall failure of %s", options.name)
        finally:
            self.guard.release(token)


__all__ = ["BUSY_BODY", "UninstallOrchestrator"]
