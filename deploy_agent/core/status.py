"""Read-side queries and runtime module control."""

from __future__ import annotations

import logging
from typing import Optional

from deploy_agent.domain.documents import ModulesDocument, PackagesDocument
from deploy_agent.domain.errors import ModuleLifecycleError
from deploy_agent.domain.messages import OperationRequest, OperationResponse
from deploy_agent.domain.ports import DocumentMarshaller, ModuleRegistry, PackageInventory
from deploy_agent.domain.status import (
    MODULE_ACTION_START,
    MODULE_ACTION_STOP,
    RESPONSE_BAD_REQUEST,
    RESPONSE_ERROR,
    RESPONSE_NOT_FOUND,
)

from . import replies
from .download import DownloadOrchestrator
from .install import InstallOrchestrator


class StatusReporter:
    """Answer READ requests from orchestrator snapshots and inventories."""

    def __init__(
        self,
        *,
        downloads: DownloadOrchestrator,
        installs: InstallOrchestrator,
        inventory: PackageInventory,
        modules: ModuleRegistry,
        marshaller: DocumentMarshaller,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._downloads = downloads
        self._installs = installs
        self._inventory = inventory
        self._modules = modules
        self._marshaller = marshaller
        self._log = logger or logging.getLogger(__name__)

    def read_download(self, request: OperationRequest, response: OperationResponse) -> None:
        snap = self._downloads.snapshot()
        if snap.held and snap.descriptor is not None:
            pending = snap.descriptor
            replies.download_in_progress(response, pending.driver, pending.options)
        else:
            replies.download_already_done(response)

    def read_install(self, request: OperationRequest, response: OperationResponse) -> None:
        snap = self._installs.snapshot()
        if snap.held:
            replies.install_in_progress(response, snap.descriptor)
        else:
            replies.install_idle(response)

    def read_packages(self, request: OperationRequest, response: OperationResponse) -> None:
        try:
            document = PackagesDocument.from_packages(self._inventory.list_packages())
            response.body = self._marshaller.marshal(document)
        except Exception as exc:
            self._log.error("Error getting resource %s: %s", request.topic, exc)
            response.fail(RESPONSE_ERROR, "Error marshalling installed packages", exc)

    def read_modules(self, request: OperationRequest, response: OperationResponse) -> None:
        try:
            document = ModulesDocument.from_modules(self._modules.list_modules())
            response.body = self._marshaller.marshal(document)
        except Exception as exc:
            self._log.error("Error getting resource %s: %s", request.topic, exc)
            response.fail(RESPONSE_ERROR, "Error marshalling modules", exc)

    def control_module(self, request: OperationRequest, response: OperationResponse) -> None:
        """Start or stop one module addressed as ``modules/<start|stop>/<id>``."""
        if len(request.resources) < 3:
            self._log.info("EXEC on %s is missing the action or module id", request.topic)
            response.fail(RESPONSE_BAD_REQUEST, "Expected modules/<start|stop>/<id>")
            return
        action, raw_id = request.resources[1], request.resources[2]
        if action not in (MODULE_ACTION_START, MODULE_ACTION_STOP):
            response.fail(RESPONSE_NOT_FOUND, f"Unknown module action {action}")
            return
        try:
            module_id = int(raw_id)
        except ValueError as exc:
            self._log.info("Invalid module id %s", raw_id)
            response.fail(RESPONSE_BAD_REQUEST, f"Invalid module id {raw_id}", exc)
            return

        if self._modules.get_module(module_id) is None:
            self._log.info("No module with id %d", module_id)
            response.fail(RESPONSE_NOT_FOUND, f"No module with id {module_id}")
            return

        try:
            if action == MODULE_ACTION_START:
                self._log.info("Starting module %d", module_id)
                self._modules.start_module(module_id)
            else:
                self._log.info("Stopping module %d", module_id)
                self._modules.stop_module(module_id)
        except ModuleLifecycleError as exc:
            self._log.error("Failed to %s module %d: %s", action, module_id, exc.message)
            response.fail(RESPONSE_ERROR, exc.message, exc)


__all__ = ["StatusReporter"]
