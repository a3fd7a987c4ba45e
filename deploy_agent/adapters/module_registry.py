"""In-process registry of individually addressable runtime modules."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

from deploy_agent.domain.documents import (
    MODULE_ACTIVE,
    MODULE_INSTALLED,
    MODULE_RESOLVED,
    MODULE_STARTING,
    MODULE_STOPPING,
    ModuleInfo,
)
from deploy_agent.domain.errors import ModuleLifecycleError

LifecycleCallback = Callable[[], None]


@dataclass
class _ModuleEntry:
    info: ModuleInfo
    start: Optional[LifecycleCallback] = None
    stop: Optional[LifecycleCallback] = None


class InMemoryModuleRegistry:
    """Modules with lifecycle state and optional start/stop callables.

    A module without callables simply changes state. Callables run outside the
    registry lock; a failing callable restores the previous state and raises
    :class:`ModuleLifecycleError`.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._lock = threading.Lock()
        self._modules: Dict[int, _ModuleEntry] = {}
        self._ids = itertools.count(1)
        self._log = logger or logging.getLogger(__name__)

    def register(
        self,
        name: str,
        version: str,
        *,
        start: Optional[LifecycleCallback] = None,
        stop: Optional[LifecycleCallback] = None,
        resolved: bool = True,
    ) -> int:
        with self._lock:
            module_id = next(self._ids)
            state = MODULE_RESOLVED if resolved else MODULE_INSTALLED
            self._modules[module_id] = _ModuleEntry(
                info=ModuleInfo(id=module_id, name=name, version=version, state=state),
                start=start,
                stop=stop,
            )
        self._log.debug("Registered module %d (%s %s)", module_id, name, version)
        return module_id

    def unregister(self, module_id: int) -> bool:
        with self._lock:
            return self._modules.pop(module_id, None) is not None

    def list_modules(self) -> List[ModuleInfo]:
        with self._lock:
            return [self._modules[key].info for key in sorted(self._modules)]

    def get_module(self, module_id: int) -> Optional[ModuleInfo]:
        with self._lock:
            entry = self._modules.get(module_id)
            return entry.info if entry is not None else None

    def start_module(self, module_id: int) -> None:
        self._transition(module_id, MODULE_STARTING, MODULE_ACTIVE, "start")

    def stop_module(self, module_id: int) -> None:
        self._transition(module_id, MODULE_STOPPING, MODULE_RESOLVED, "stop")

    def _transition(self, module_id: int, transient: str, final: str, action: str) -> None:
        with self._lock:
            entry = self._modules.get(module_id)
            if entry is None:
                raise ModuleLifecycleError(module_id, f"No module with id {module_id}")
            previous = entry.info.state
            if previous == final:
                return
            if previous in (MODULE_STARTING, MODULE_STOPPING):
                raise ModuleLifecycleError(module_id, f"Module {module_id} is {previous.lower()}")
            entry.info = replace(entry.info, state=transient)
            callback = entry.start if action == "start" else entry.stop

        try:
            if callback is not None:
                callback()
        except Exception as exc:
            self._set_state(module_id, previous)
            raise ModuleLifecycleError(module_id, f"Failed to {action} module {module_id}: {exc}") from exc
        self._set_state(module_id, final)

    def _set_state(self, module_id: int, state: str) -> None:
        with self._lock:
            entry = self._modules.get(module_id)
            if entry is not None:
                entry.info = replace(entry.info, state=state)


__all__ = ["InMemoryModuleRegistry"]
