"""Agent settings read from ``DEPLOY_AGENT_*`` environment variables."""

from __future__ import annotations

import logging
import os
import re
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from deploy_agent.adapters.notifications import DEFAULT_NOTIFICATION_LIMIT
from deploy_agent.adapters.tls import TlsSettings
from deploy_agent.domain.errors import ConfigurationError
from deploy_agent.utils.logging import env_truthy

DEFAULT_DATA_DIR = "/opt/deploy-agent"
HOOK_ASSOCIATIONS_KEY = "deployment.hook.associations"

_log = logging.getLogger(__name__)
_SEPARATOR = re.compile(r"\s*[=:]\s*")


def parse_hook_associations(text: Optional[str]) -> Dict[str, str]:
    """Parse ``request_type=hook_id`` lines into a mapping.

    Entries are separated by newlines or ``;``. Blank entries and lines
    starting with ``#`` or ``!`` are ignored; ``key: value`` is accepted too.
    A non-empty entry without a separator raises ``ValueError``.
    """
    result: Dict[str, str] = {}
    if not text:
        return result
    for raw in re.split(r"[;\n]", text):
        line = raw.strip()
        if not line or line.startswith(("#", "!")):
            continue
        parts = _SEPARATOR.split(line, maxsplit=1)
        if len(parts) != 2 or not parts[0]:
            raise ValueError(f"Invalid hook association entry: {line!r}")
        key, value = parts[0].strip(), parts[1].strip()
        if value:
            result[key] = value
    return result


def _path_env(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        raise ConfigurationError(f"{name} must not be empty", f"Unset {name} or point it at a directory.")
    return Path(raw).expanduser()


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer", f"Got {raw!r}.") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive", f"Got {value}.")
    return value


def _optional_path_env(name: str) -> Optional[Path]:
    raw = (os.getenv(name) or "").strip()
    return Path(raw).expanduser() if raw else None


@dataclass(frozen=True)
class AgentSettings:
    """Runtime configuration of one deployment agent."""

    client_id: str
    downloads_dir: Path
    packages_dir: Path
    verification_dir: Path
    hook_associations: str = ""
    notification_limit: int = DEFAULT_NOTIFICATION_LIMIT
    tls: TlsSettings = field(default_factory=TlsSettings)

    def __post_init__(self) -> None:
        if not str(self.client_id or "").strip():
            raise ConfigurationError("Client id must not be empty", "Set DEPLOY_AGENT_CLIENT_ID.")
        for label in ("downloads_dir", "packages_dir", "verification_dir"):
            if not str(getattr(self, label) or "").strip():
                raise ConfigurationError(f"{label} must not be empty")

    @classmethod
    def for_data_dir(cls, data_dir: Path, *, client_id: str = "deploy-agent", **overrides: object) -> "AgentSettings":
        data_dir = Path(data_dir)
        values: Dict[str, object] = {
            "client_id": client_id,
            "downloads_dir": data_dir / "downloads",
            "packages_dir": data_dir / "packages",
            "verification_dir": data_dir / "verification",
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    @classmethod
    def from_env(cls) -> "AgentSettings":
        data_dir = _path_env("DEPLOY_AGENT_DATA_DIR", Path(DEFAULT_DATA_DIR))
        tls = TlsSettings(
            ca_bundle=_optional_path_env("DEPLOY_AGENT_TLS_CA_BUNDLE"),
            client_cert=_optional_path_env("DEPLOY_AGENT_TLS_CLIENT_CERT"),
            client_key=_optional_path_env("DEPLOY_AGENT_TLS_CLIENT_KEY"),
            insecure=env_truthy(os.getenv("DEPLOY_AGENT_TLS_INSECURE")),
        )
        return cls(
            client_id=(os.getenv("DEPLOY_AGENT_CLIENT_ID") or "").strip() or socket.gethostname(),
            downloads_dir=_path_env("DEPLOY_AGENT_DOWNLOADS_DIR", data_dir / "downloads"),
            packages_dir=_path_env("DEPLOY_AGENT_PACKAGES_DIR", data_dir / "packages"),
            verification_dir=_path_env("DEPLOY_AGENT_VERIFICATION_DIR", data_dir / "verification"),
            hook_associations=os.getenv("DEPLOY_AGENT_HOOK_ASSOCIATIONS", ""),
            notification_limit=_int_env("DEPLOY_AGENT_NOTIFICATION_LIMIT", DEFAULT_NOTIFICATION_LIMIT),
            tls=tls,
        )


def associations_from_properties(properties: Optional[Mapping[str, object]]) -> Dict[str, str]:
    """Read the hook association text out of a configuration update.

    An unparsable value is logged and yields an empty table.
    """
    text = (properties or {}).get(HOOK_ASSOCIATIONS_KEY)
    try:
        return parse_hook_associations(str(text) if text is not None else None)
    except ValueError as exc:
        _log.warning("Failed to parse hook associations from configuration: %s", exc)
        return {}


__all__ = [
    "AgentSettings",
    "DEFAULT_DATA_DIR",
    "HOOK_ASSOCIATIONS_KEY",
    "associations_from_properties",
    "parse_hook_associations",
]
