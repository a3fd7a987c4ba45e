"""Composition root wiring guards, worker, orchestrators and collaborators."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from deploy_agent.adapters.artifacts import ArtifactStore
from deploy_agent.adapters.hook_registry import DeploymentHookManager
from deploy_agent.adapters.http_download import HttpDownloadDriverFactory
from deploy_agent.adapters.marshalling import JsonDocumentMarshaller
from deploy_agent.adapters.module_registry import InMemoryModuleRegistry
from deploy_agent.adapters.notifications import JobNotifier, NotificationOutbox
from deploy_agent.adapters.package_installer import FilesystemInstallDriver, RestartCallback
from deploy_agent.adapters.package_store import PackageStore
from deploy_agent.adapters.package_uninstaller import FilesystemUninstallDriver
from deploy_agent.config import AgentSettings, associations_from_properties, parse_hook_associations
from deploy_agent.domain.errors import ConfigurationError
from deploy_agent.domain.messages import OperationResponse
from deploy_agent.domain.ports import (
    DocumentMarshaller,
    DownloadDriverFactory,
    HookRegistry,
    InstallDriver,
    ModuleRegistry,
    NotificationPublisher,
    PackageInventory,
    SecureTransport,
    UninstallDriver,
)
from deploy_agent.domain.status import NOTIFY_DOWNLOAD, NOTIFY_INSTALL, NOTIFY_UNINSTALL

from .dispatcher import RequestDispatcher
from .download import DownloadOrchestrator
from .guard import OperationGuard
from .install import InstallOrchestrator, InstallSlot
from .status import StatusReporter
from .uninstall import UninstallOrchestrator
from .worker import DEFAULT_QUEUE_CAPACITY, BackgroundWorker


class DeploymentAgent:
    """Deployment request handler with an explicit activate/deactivate lifecycle.

    Every collaborator can be injected; anything left out gets the default
    filesystem/HTTP implementation from :mod:`deploy_agent.adapters`.
    """

    def __init__(
        self,
        settings: AgentSettings,
        *,
        hooks: Optional[HookRegistry] = None,
        publisher: Optional[NotificationPublisher] = None,
        driver_factory: Optional[DownloadDriverFactory] = None,
        install_driver: Optional[InstallDriver] = None,
        uninstall_driver: Optional[UninstallDriver] = None,
        inventory: Optional[PackageInventory] = None,
        modules: Optional[ModuleRegistry] = None,
        marshaller: Optional[DocumentMarshaller] = None,
        secure_transport: Optional[SecureTransport] = None,
        restart_system: Optional[RestartCallback] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings
        self._log = logger or logging.getLogger(__name__)
        self.outbox: Optional[NotificationOutbox] = None
        if publisher is None:
            self.outbox = NotificationOutbox(settings.notification_limit)
            publisher = self.outbox
        self.publisher = publisher
        self.hooks = hooks if hooks is not None else DeploymentHookManager()
        self.artifacts = ArtifactStore(settings.downloads_dir)
        self.store = PackageStore(settings.packages_dir)
        self.modules = modules if modules is not None else InMemoryModuleRegistry()
        self.worker = BackgroundWorker(name=f"deploy-worker-{settings.client_id}", capacity=DEFAULT_QUEUE_CAPACITY)

        self._http_factory: Optional[HttpDownloadDriverFactory] = None
        if driver_factory is None:
            self._http_factory = HttpDownloadDriverFactory(
                artifacts=self.artifacts,
                notifier=JobNotifier(publisher, settings.client_id, NOTIFY_DOWNLOAD),
            )
            driver_factory = self._http_factory
        if install_driver is None:
            install_driver = FilesystemInstallDriver(
                store=self.store,
                notifier=JobNotifier(publisher, settings.client_id, NOTIFY_INSTALL),
                verification_dir=settings.verification_dir,
                restart_system=restart_system,
            )
        if uninstall_driver is None:
            uninstall_driver = FilesystemUninstallDriver(
                store=self.store,
                notifier=JobNotifier(publisher, settings.client_id, NOTIFY_UNINSTALL),
                restart_system=restart_system,
            )

        # install and uninstall share one slot
        install_guard: OperationGuard[InstallSlot] = OperationGuard("install")
        self.installs = InstallOrchestrator(
            worker=self.worker,
            guard=install_guard,
            driver=install_driver,
            artifacts=self.artifacts,
            hooks=self.hooks,
        )
        self.downloads = DownloadOrchestrator(
            worker=self.worker,
            driver_factory=driver_factory,
            artifacts=self.artifacts,
            hooks=self.hooks,
            secure_transport=secure_transport if secure_transport is not None else settings.tls,
            verification_dir=settings.verification_dir,
            after_download=self.installs.install_after_download,
        )
        self.uninstalls = UninstallOrchestrator(
            worker=self.worker,
            guard=install_guard,
            driver=uninstall_driver,
        )
        self.reporter = StatusReporter(
            downloads=self.downloads,
            installs=self.installs,
            inventory=inventory if inventory is not None else self.store,
            modules=self.modules,
            marshaller=marshaller if marshaller is not None else JsonDocumentMarshaller(),
        )
        self.dispatcher = RequestDispatcher(
            downloads=self.downloads,
            installs=self.installs,
            uninstalls=self.uninstalls,
            reporter=self.reporter,
        )
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def activate(self) -> None:
        """Create working directories, load hook associations and start the worker."""
        for directory in (
            self.settings.downloads_dir,
            self.settings.packages_dir,
            self.settings.verification_dir,
        ):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise ConfigurationError(f"Cannot create directory {directory}", str(exc)) from exc
        try:
            associations = parse_hook_associations(self.settings.hook_associations)
        except ValueError as exc:
            self._log.warning("Failed to parse hook associations: %s", exc)
            associations = {}
        self.hooks.update_associations(associations)
        self.worker.start()
        self._active = True
        self._log.info("Deployment agent %s activated", self.settings.client_id)

    def updated(self, properties: Optional[Mapping[str, Any]]) -> None:
        """Apply a configuration update; only hook associations are reconfigurable."""
        self.hooks.update_associations(associations_from_properties(properties))

    def deactivate(self, timeout: float = 5.0) -> None:
        """Cancel the pending download and queued jobs, then stop the worker."""
        self._log.info("Deactivating deployment agent %s", self.settings.client_id)
        self.downloads.shutdown()
        for job in self.worker.pending_jobs():
            job.cancel()
        self.worker.shutdown(cancel_pending=True, timeout=timeout)
        if self._http_factory is not None:
            self._http_factory.close()
        self._active = False

    def handle(
        self,
        topic: Optional[str],
        verb: object,
        params: Optional[Mapping[str, Any]] = None,
        requester_client_id: Optional[str] = None,
    ) -> OperationResponse:
        return self.dispatcher.dispatch(topic, verb, params, requester_client_id)


__all__ = ["DeploymentAgent"]
