"""Registry of deployment hooks and their request-type associations."""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from deploy_agent.domain.ports import DeploymentHook


class DeploymentHookManager:
    """Hooks registered by id, resolved through a request-type association table.

    The association table is replaced wholesale on every update, so readers
    always see one consistent snapshot without locking.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._lock = threading.Lock()
        self._hooks: Dict[str, DeploymentHook] = {}
        self._associations: Mapping[str, str] = MappingProxyType({})
        self._log = logger or logging.getLogger(__name__)

    def register(self, hook_id: str, hook: DeploymentHook) -> None:
        if not hook_id:
            raise ValueError("hook id must be a non-empty string")
        with self._lock:
            self._hooks[hook_id] = hook
        self._log.info("Registered deployment hook %s", hook_id)

    def unregister(self, hook_id: str) -> None:
        with self._lock:
            removed = self._hooks.pop(hook_id, None)
        if removed is not None:
            self._log.info("Unregistered deployment hook %s", hook_id)

    def update_associations(self, associations: Mapping[str, str]) -> None:
        snapshot = {
            str(request_type).strip(): str(hook_id).strip()
            for request_type, hook_id in associations.items()
            if str(request_type).strip() and str(hook_id).strip()
        }
        self._associations = MappingProxyType(snapshot)
        self._log.info("Hook associations updated: %s", snapshot or "none")

    @property
    def associations(self) -> Mapping[str, str]:
        return self._associations

    def resolve(self, request_type: str) -> Optional[DeploymentHook]:
        hook_id = self._associations.get(request_type)
        if hook_id is None:
            return None
        with self._lock:
            return self._hooks.get(hook_id)


__all__ = ["DeploymentHookManager"]
