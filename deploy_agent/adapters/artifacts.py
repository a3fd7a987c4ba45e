"""Location, probing and cleanup of downloaded package artifacts."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Optional

from deploy_agent.domain.options import DownloadOptions, InstallOptions

PARTIAL_SUFFIX = ".part"


def compute_file_digest(path: Path, algorithm: str = "sha256") -> str:
    """Compute the hex digest of one file with ``algorithm``."""
    digest = hashlib.new(algorithm)
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(1024 * 1024)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


class ArtifactStore:
    """Map package options to files in the downloads directory."""

    def __init__(self, downloads_dir: Path, *, logger: Optional[logging.Logger] = None) -> None:
        self.downloads_dir = Path(downloads_dir)
        self._log = logger or logging.getLogger(__name__)

    def path_for(self, options: InstallOptions) -> Path:
        return self.downloads_dir / options.artifact_name

    def partial_path_for(self, options: InstallOptions) -> Path:
        path = self.path_for(options)
        return path.with_name(path.name + PARTIAL_SUFFIX)

    def is_downloaded(self, options: InstallOptions) -> bool:
        """Return True when the complete artifact is present on disk.

        When download options carry an ``ALGO:hex`` hash, the file must also
        match it.
        """
        path = self.path_for(options)
        if not path.is_file():
            return False
        if isinstance(options, DownloadOptions) and options.hash_algorithm:
            actual = compute_file_digest(path, options.hash_algorithm)
            if actual.lower() != (options.hash_value or "").lower():
                self._log.info("Artifact %s present but checksum differs", path.name)
                return False
        return True

    def discard(self, options: InstallOptions) -> None:
        """Delete the artifact and any partial file; errors are logged and swallowed."""
        for path in (self.path_for(options), self.partial_path_for(options)):
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                self._log.debug("Could not delete artifact %s: %s", path, exc)


__all__ = ["ArtifactStore", "PARTIAL_SUFFIX", "compute_file_digest"]
