"""Operation options parsed from request parameters.

Parameters travel under dotted wire names (``dp.name``, ``job.id``, ...);
the models below expose them as attributes and reject malformed input with
:class:`~deploy_agent.domain.errors.MalformedRequestError`.
"""

from __future__ import annotations

import hashlib
from typing import Any, Mapping, Optional, Type, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MalformedRequestError

SUPPORTED_PROTOCOLS: tuple[str, ...] = ("HTTP", "HTTPS")
DEFAULT_BLOCK_SIZE = 4096
DEFAULT_NOTIFY_BLOCK_SIZE = 2048 * 1024
DEFAULT_DOWNLOAD_TIMEOUT_MS = 4000
# bookkeeping file kept beside the installed package directories
PACKAGE_INDEX_FILENAME = "_packages.json"

_OptionsT = TypeVar("_OptionsT", bound="_OptionsModel")


def _plain_segment(value: str) -> str:
    # names and versions become file and directory names on disk
    if "/" in value or "\\" in value or value in (".", ".."):
        raise ValueError("must not contain path separators")
    return value


def _package_name(value: str) -> str:
    # hidden names are reserved for backup and staging directories
    value = _plain_segment(value)
    if value.startswith(".") or value == PACKAGE_INDEX_FILENAME:
        raise ValueError(f"{value!r} is a reserved name")
    return value


class _OptionsModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="ignore",
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
    )

    @classmethod
    def from_params(cls: Type[_OptionsT], params: Optional[Mapping[str, Any]]) -> _OptionsT:
        """Validate request parameters, raising ``MalformedRequestError``."""
        try:
            return cls.model_validate(dict(params or {}))
        except ValidationError as exc:
            fields = ", ".join(
                ".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()
            )
            raise MalformedRequestError(
                f"Malformed {cls.__name__} parameters",
                f"Invalid or missing: {fields}" if fields else str(exc),
            ) from exc


class UninstallOptions(_OptionsModel):
    """Parameters of an ``uninstall`` EXEC request."""

    name: str = Field(..., alias="dp.name", min_length=1)
    job_id: int = Field(..., alias="job.id")
    reboot: bool = Field(False, alias="dp.reboot")
    reboot_delay_ms: int = Field(0, alias="dp.reboot.delay", ge=0)
    requester_client_id: Optional[str] = Field(None, alias="requester.client.id")

    @field_validator("name")
    @classmethod
    def _usable_package_name(cls, value: str) -> str:
        return _package_name(value)


class InstallOptions(_OptionsModel):
    """Parameters of an ``install`` EXEC request."""

    name: str = Field(..., alias="dp.name", min_length=1)
    version: str = Field(..., alias="dp.version", min_length=1)
    job_id: int = Field(..., alias="job.id")
    system_update: bool = Field(False, alias="dp.install.system.update")
    verifier_uri: Optional[str] = Field(None, alias="dp.install.verifier.uri")
    reboot: bool = Field(False, alias="dp.reboot")
    reboot_delay_ms: int = Field(0, alias="dp.reboot.delay", ge=0)
    request_type: Optional[str] = Field(None, alias="request.type")
    requester_client_id: Optional[str] = Field(None, alias="requester.client.id")

    @field_validator("name")
    @classmethod
    def _usable_package_name(cls, value: str) -> str:
        return _package_name(value)

    @field_validator("version")
    @classmethod
    def _no_path_separators(cls, value: str) -> str:
        return _plain_segment(value)

    @field_validator("request_type", "verifier_uri")
    @classmethod
    def _empty_as_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @property
    def artifact_name(self) -> str:
        suffix = ".sh" if self.system_update else ".dp"
        return f"{self.name}-{self.version}{suffix}"


class DownloadOptions(InstallOptions):
    """Parameters of a ``download`` EXEC request."""

    uri: str = Field(..., alias="dp.uri", min_length=1)
    protocol: str = Field("HTTP", alias="dp.download.protocol")
    block_size: int = Field(DEFAULT_BLOCK_SIZE, alias="dp.download.block.size", gt=0)
    notify_block_size: int = Field(DEFAULT_NOTIFY_BLOCK_SIZE, alias="dp.download.notify.block.size", gt=0)
    timeout_ms: int = Field(DEFAULT_DOWNLOAD_TIMEOUT_MS, alias="dp.download.timeout", gt=0)
    force: bool = Field(False, alias="dp.download.force")
    username: Optional[str] = Field(None, alias="dp.download.username")
    password: Optional[str] = Field(None, alias="dp.download.password", repr=False)
    hash_spec: Optional[str] = Field(None, alias="dp.download.hash")
    install: bool = Field(True, alias="dp.install")

    @field_validator("uri")
    @classmethod
    def _http_uri(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
            raise ValueError("dp.uri must be an absolute http(s) URL")
        return value

    @field_validator("protocol")
    @classmethod
    def _known_protocol(cls, value: str) -> str:
        upper = value.upper()
        if upper not in SUPPORTED_PROTOCOLS:
            raise ValueError(f"unsupported protocol {value}")
        return upper

    @field_validator("hash_spec")
    @classmethod
    def _hash_spec(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        algorithm, sep, digest = value.partition(":")
        if not sep or not digest.strip():
            raise ValueError("dp.download.hash must look like ALGO:hexdigest")
        if algorithm.strip().lower() not in hashlib.algorithms_available:
            raise ValueError(f"unknown hash algorithm {algorithm}")
        return f"{algorithm.strip().lower()}:{digest.strip().lower()}"

    @property
    def hash_algorithm(self) -> Optional[str]:
        return self.hash_spec.split(":", 1)[0] if self.hash_spec else None

    @property
    def hash_value(self) -> Optional[str]:
        return self.hash_spec.split(":", 1)[1] if self.hash_spec else None

    def install_options(self) -> InstallOptions:
        """Return the install subset used by install-after-download."""
        return InstallOptions.model_validate(
            self.model_dump(include=set(InstallOptions.model_fields))
        )


__all__ = [
    "DownloadOptions",
    "InstallOptions",
    "PACKAGE_INDEX_FILENAME",
    "UninstallOptions",
    "SUPPORTED_PROTOCOLS",
]
