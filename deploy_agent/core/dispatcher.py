"""Route inbound requests to the handler owning ``(resource, verb)``."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from deploy_agent.domain.messages import OperationRequest, OperationResponse
from deploy_agent.domain.status import (
    RESOURCE_DOWNLOAD,
    RESOURCE_INSTALL,
    RESOURCE_MODULES,
    RESOURCE_PACKAGES,
    RESOURCE_UNINSTALL,
    RESPONSE_BAD_REQUEST,
    RESPONSE_ERROR,
    RESPONSE_NOT_FOUND,
    VERB_DELETE,
    VERB_EXEC,
    VERB_READ,
)

from .download import DownloadOrchestrator
from .install import InstallOrchestrator
from .status import StatusReporter
from .uninstall import UninstallOrchestrator

Handler = Callable[[OperationRequest, OperationResponse], None]


class RequestDispatcher:
    """Pure delegation from topic and verb to an orchestrator or the reporter."""

    def __init__(
        self,
        *,
        downloads: DownloadOrchestrator,
        installs: InstallOrchestrator,
        uninstalls: UninstallOrchestrator,
        reporter: StatusReporter,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._log = logger or logging.getLogger(__name__)
        self._routes: Dict[Tuple[str, str], Handler] = {
            (RESOURCE_DOWNLOAD, VERB_READ): reporter.read_download,
            (RESOURCE_DOWNLOAD, VERB_EXEC): downloads.execute,
            (RESOURCE_DOWNLOAD, VERB_DELETE): downloads.cancel,
            (RESOURCE_INSTALL, VERB_READ): reporter.read_install,
            (RESOURCE_INSTALL, VERB_EXEC): installs.execute,
            (RESOURCE_UNINSTALL, VERB_EXEC): uninstalls.execute,
            (RESOURCE_PACKAGES, VERB_READ): reporter.read_packages,
            (RESOURCE_MODULES, VERB_READ): reporter.read_modules,
            (RESOURCE_MODULES, VERB_EXEC): reporter.control_module,
        }

    def dispatch(
        self,
        topic: Optional[str],
        verb: object,
        params: Optional[Mapping[str, Any]] = None,
        requester_client_id: Optional[str] = None,
    ) -> OperationResponse:
        request = OperationRequest.from_topic(
            topic, verb, params, requester_client_id=requester_client_id
        )
        return self.handle(request)

    def handle(self, request: OperationRequest) -> OperationResponse:
        response = OperationResponse()
        if request.resource is None:
            self._log.info("Request without resource rejected")
            response.fail(RESPONSE_BAD_REQUEST, "Missing resource")
            return response

        handler = self._routes.get((request.resource, request.verb or ""))
        if handler is None:
            self._log.info("No handler for %s on %s", request.verb, request.topic)
            response.fail(RESPONSE_NOT_FOUND, f"Resource not found: {request.topic}")
            return response

        try:
            handler(request, response)
        except Exception as exc:
            self._log.exception("Unhandled error serving %s %s", request.verb, request.topic)
            response.fail(RESPONSE_ERROR, str(exc) or exc.__class__.__name__, exc)
        return response


__all__ = ["RequestDispatcher"]
