"""Hook resolution and invocation shared by the download and install paths."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from deploy_agent.domain.errors import HookConfigurationError
from deploy_agent.domain.options import InstallOptions
from deploy_agent.domain.ports import DeploymentHook, HookRegistry, HookRequestContext

PHASE_PRE_DOWNLOAD = "preDownload"
PHASE_POST_DOWNLOAD = "postDownload"
PHASE_POST_INSTALL = "postInstall"

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HookBinding:
    """A resolved hook together with the context and properties of one request."""

    hook: DeploymentHook
    context: HookRequestContext
    properties: Mapping[str, Any]

    def invoke(self, phase: str) -> None:
        """Run one hook phase; any exception vetoes the operation."""
        callback = {
            PHASE_PRE_DOWNLOAD: self.hook.pre_download,
            PHASE_POST_DOWNLOAD: self.hook.post_download,
            PHASE_POST_INSTALL: self.hook.post_install,
        }[phase]
        try:
            callback(self.context, self.properties)
        except Exception:
            _log.warning(
                "DeploymentHook cancelled operation at %s phase (request type %s)",
                phase,
                self.context.request_type,
            )
            raise


def resolve_hook(
    registry: Optional[HookRegistry],
    options: InstallOptions,
    artifact_path: Path,
    properties: Mapping[str, Any],
) -> Optional[HookBinding]:
    """Bind the hook associated with the request type of ``options``.

    Returns ``None`` when the request carries no request type. A request type
    without an associated hook raises :class:`HookConfigurationError`.
    """
    request_type = options.request_type
    if not request_type:
        return None
    hook = registry.resolve(request_type) if registry is not None else None
    if hook is None:
        raise HookConfigurationError(request_type)
    return HookBinding(
        hook=hook,
        context=HookRequestContext(download_path=str(artifact_path), request_type=request_type),
        properties=dict(properties),
    )


def invoke_phase(binding: Optional[HookBinding], phase: str) -> None:
    if binding is not None:
        binding.invoke(phase)


__all__ = [
    "HookBinding",
    "PHASE_POST_DOWNLOAD",
    "PHASE_POST_INSTALL",
    "PHASE_PRE_DOWNLOAD",
    "invoke_phase",
    "resolve_hook",
]
