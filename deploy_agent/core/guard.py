"""Single-flight guard owned by one operation category."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

D = TypeVar("D")


@dataclass(frozen=True)
class GuardSnapshot(Generic[D]):
    """Consistent view of a guard at one instant."""

    held: bool
    token: Optional[str] = None
    descriptor: Optional[D] = None


class OperationGuard(Generic[D]):
    """Mutex-protected guard slot with check-then-set acquisition.

    The lock is held only across the check-and-set, never across the job that
    owns the slot. Release is keyed by token, so releasing twice or releasing
    a slot that was already re-acquired by another job is a no-op.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._descriptor: Optional[D] = None

    def try_acquire(self, token: str, descriptor: Optional[D] = None) -> bool:
        """Occupy the slot with ``token`` if it is free."""
        if not token:
            raise ValueError("guard token must be a non-empty string")
        with self._lock:
            if self._token is not None:
                return False
            self._token = token
            self._descriptor = descriptor
            return True

    def release(self, token: str) -> bool:
        """Free the slot if it is still held by ``token``."""
        with self._lock:
            if self._token is None or self._token != token:
                return False
            self._token = None
            self._descriptor = None
            return True

    def snapshot(self) -> GuardSnapshot[D]:
        with self._lock:
            return GuardSnapshot(held=self._token is not None, token=self._token, descriptor=self._descriptor)

    @property
    def held(self) -> bool:
        with self._lock:
            return self._token is not None

    @property
    def token(self) -> Optional[str]:
        with self._lock:
            return self._token

    @property
    def descriptor(self) -> Any:
        with self._lock:
            return self._descriptor

    def __repr__(self) -> str:
        snap = self.snapshot()
        return f"OperationGuard(name={self.name!r}, held={snap.held}, token={snap.token!r})"


__all__ = ["GuardSnapshot", "OperationGuard"]
