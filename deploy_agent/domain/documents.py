"""Inventory records and the structured documents returned by read queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Literal, Tuple

from pydantic import BaseModel, Field

ModuleState = Literal["UNINSTALLED", "INSTALLED", "RESOLVED", "STARTING", "STOPPING", "ACTIVE"]
MODULE_UNINSTALLED: ModuleState = "UNINSTALLED"
MODULE_INSTALLED: ModuleState = "INSTALLED"
MODULE_RESOLVED: ModuleState = "RESOLVED"
MODULE_STARTING: ModuleState = "STARTING"
MODULE_STOPPING: ModuleState = "STOPPING"
MODULE_ACTIVE: ModuleState = "ACTIVE"


@dataclass(frozen=True)
class ComponentInfo:
    name: str
    version: str


@dataclass(frozen=True)
class PackageInfo:
    """One installed package and the components it brought in."""

    name: str
    version: str
    components: Tuple[ComponentInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ModuleInfo:
    """Snapshot of one runtime module."""

    id: int
    name: str
    version: str
    state: ModuleState


class ComponentDocument(BaseModel):
    name: str
    version: str


class PackageDocument(BaseModel):
    name: str
    version: str
    components: List[ComponentDocument] = Field(default_factory=list)


class PackagesDocument(BaseModel):
    """Document listing installed packages with their components."""

    packages: List[PackageDocument] = Field(default_factory=list)

    @classmethod
    def from_packages(cls, packages: Iterable[PackageInfo]) -> "PackagesDocument":
        return cls(
            packages=[
                PackageDocument(
                    name=pkg.name,
                    version=pkg.version,
                    components=[ComponentDocument(name=c.name, version=c.version) for c in pkg.components],
                )
                for pkg in packages
            ]
        )


class ModuleDocument(BaseModel):
    id: int
    name: str
    version: str
    state: str


class ModulesDocument(BaseModel):
    """Document listing runtime modules with their lifecycle state."""

    modules: List[ModuleDocument] = Field(default_factory=list)

    @classmethod
    def from_modules(cls, modules: Iterable[ModuleInfo]) -> "ModulesDocument":
        return cls(
            modules=[
                ModuleDocument(id=m.id, name=m.name, version=m.version, state=m.state)
                for m in modules
            ]
        )


__all__ = [
    "ComponentDocument",
    "ComponentInfo",
    "ModuleDocument",
    "ModuleInfo",
    "ModuleState",
    "ModulesDocument",
    "PackageDocument",
    "PackageInfo",
    "PackagesDocument",
]
