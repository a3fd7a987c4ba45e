"""Installed-package index persisted next to the installed packages."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from deploy_agent.domain.documents import ComponentInfo, PackageInfo
from deploy_agent.domain.messages import utc_now_iso
from deploy_agent.domain.options import PACKAGE_INDEX_FILENAME

INDEX_FILENAME = PACKAGE_INDEX_FILENAME


class PackageStore:
    """Lock-protected JSON index of installed packages.

    Each package lives in ``<packages_dir>/<name>``; the index maps the
    package name to its version and components. Writes go through a temporary
    file and an atomic rename.
    """

    def __init__(self, packages_dir: Path, *, logger: Optional[logging.Logger] = None) -> None:
        self.packages_dir = Path(packages_dir)
        self._lock = threading.Lock()
        self._log = logger or logging.getLogger(__name__)

    @property
    def index_path(self) -> Path:
        return self.packages_dir / INDEX_FILENAME

    def package_dir(self, name: str) -> Path:
        return self.packages_dir / name

    def record(self, package: PackageInfo) -> None:
        with self._lock:
            data = self._load_unlocked()
            data[package.name] = {
                "version": package.version,
                "components": [
                    {"name": component.name, "version": component.version}
                    for component in package.components
                ],
                "installed_at": utc_now_iso(),
            }
            self._write_unlocked(data)

    def forget(self, name: str) -> bool:
        with self._lock:
            data = self._load_unlocked()
            if name not in data:
                return False
            del data[name]
            self._write_unlocked(data)
            return True

    def get(self, name: str) -> Optional[PackageInfo]:
        with self._lock:
            entry = self._load_unlocked().get(name)
        return self._to_info(name, entry) if entry is not None else None

    def list_packages(self) -> List[PackageInfo]:
        with self._lock:
            data = self._load_unlocked()
        return [self._to_info(name, data[name]) for name in sorted(data)]

    @staticmethod
    def _to_info(name: str, entry: Dict[str, Any]) -> PackageInfo:
        components = tuple(
            ComponentInfo(name=str(item.get("name") or ""), version=str(item.get("version") or ""))
            for item in entry.get("components") or ()
            if isinstance(item, dict)
        )
        return PackageInfo(name=name, version=str(entry.get("version") or ""), components=components)

    def _load_unlocked(self) -> Dict[str, Dict[str, Any]]:
        # unreadable or invalid content degrades to an empty index
        try:
            raw = self.index_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            self._log.warning("Could not read package index %s: %s", self.index_path, exc)
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            self._log.warning("Package index %s is not valid JSON, ignoring it", self.index_path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {name: entry for name, entry in data.items() if isinstance(name, str) and isinstance(entry, dict)}

    def _write_unlocked(self, data: Dict[str, Dict[str, Any]]) -> None:
        path = self.index_path
        tmp = path.with_suffix(".tmp")
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(path)


__all__ = ["INDEX_FILENAME", "PackageStore"]
