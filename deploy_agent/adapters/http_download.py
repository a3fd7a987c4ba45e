"""HTTP(S) download driver built on ``requests`` streaming."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from deploy_agent.domain.errors import ChecksumMismatchError, DownloadCancelledError, DriverError
from deploy_agent.domain.options import DownloadOptions
from deploy_agent.domain.ports import SecureTransport
from deploy_agent.domain.status import (
    DOWNLOAD_ALREADY_DONE,
    DOWNLOAD_CANCELLED,
    DOWNLOAD_COMPLETED,
    DOWNLOAD_FAILED,
    DOWNLOAD_IN_PROGRESS,
    METRIC_DL_ERROR,
    METRIC_DL_PROGRESS,
    METRIC_DL_SIZE,
    METRIC_DL_STATUS,
    METRIC_DL_TRANSFERRED,
    METRIC_DP_NAME,
    METRIC_DP_VERSION,
    METRIC_JOB_ID,
)

from .artifacts import PARTIAL_SUFFIX, ArtifactStore, compute_file_digest
from .notifications import JobNotifier

VERIFIER_SUFFIX = "_verifier.sh"


def verifier_path(verification_dir: Path, name: str, version: str) -> Path:
    return Path(verification_dir) / f"{name}-{version}{VERIFIER_SUFFIX}"


class HttpDownloadDriver:
    """Transfer one package to the downloads directory and self-report progress.

    Bytes are streamed into a ``.part`` file that is renamed once complete, so
    a present artifact is always a complete one. ``cancel()`` is cooperative:
    the transfer loop checks it between blocks.
    """

    def __init__(
        self,
        options: DownloadOptions,
        *,
        artifacts: ArtifactStore,
        notifier: JobNotifier,
        session: requests.Session,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.options = options
        self._artifacts = artifacts
        self._notifier = notifier
        self._session = session
        self._log = logger or logging.getLogger(__name__)
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._transferred = 0
        self._total = 0
        self._verification_dir: Optional[Path] = None
        self._secure_transport: Optional[SecureTransport] = None
        self._already_downloaded = False

    # ---- progress counters ----
    @property
    def transferred_bytes(self) -> int:
        with self._lock:
            return self._transferred

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total

    @property
    def progress_pct(self) -> int:
        with self._lock:
            if self._total <= 0:
                return 0
            return min(100, int(self._transferred * 100 / self._total))

    # ---- driver API ----
    def is_already_downloaded(self) -> bool:
        return self._artifacts.is_downloaded(self.options)

    def configure(
        self,
        *,
        verification_dir: Optional[Path],
        secure_transport: Optional[SecureTransport],
        already_downloaded: bool,
    ) -> None:
        self._verification_dir = Path(verification_dir) if verification_dir else None
        self._secure_transport = secure_transport
        self._already_downloaded = bool(already_downloaded)

    def download(self) -> Path:
        target = self._artifacts.path_for(self.options)
        try:
            if self._cancelled.is_set():
                raise DownloadCancelledError(self.options.uri)
            if self._already_downloaded:
                size = target.stat().st_size
                with self._lock:
                    self._transferred = self._total = size
            else:
                self._transfer(self.options.uri, target, primary=True)
                if self.options.verifier_uri and self._verification_dir is not None:
                    self._fetch_verifier()
        except DownloadCancelledError:
            self._log.info("Download of %s cancelled", self.options.uri)
            self._notify(DOWNLOAD_CANCELLED)
            raise
        except Exception as exc:
            self._notify(DOWNLOAD_FAILED, error=str(exc) or exc.__class__.__name__)
            raise
        if self._already_downloaded:
            self._log.info("Artifact %s already downloaded", target.name)
            self._notify(DOWNLOAD_ALREADY_DONE)
        else:
            self._notify(DOWNLOAD_COMPLETED)
        return target

    def cancel(self) -> None:
        self._cancelled.set()

    def delete_downloaded_file(self) -> None:
        self._artifacts.discard(self.options)

    # ---- helpers ----
    def _request_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "stream": True,
            "timeout": self.options.timeout_ms / 1000.0,
        }
        if self.options.username:
            kwargs["auth"] = (self.options.username, self.options.password or "")
        if self._secure_transport is not None:
            kwargs["verify"] = self._secure_transport.verify
            cert = self._secure_transport.cert
            if cert:
                kwargs["cert"] = cert
        return kwargs

    def _transfer(self, url: str, target: Path, *, primary: bool) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        notify_every = self.options.notify_block_size
        next_notify = notify_every
        with self._session.get(url, **self._request_kwargs()) as resp:
            try:
                resp.raise_for_status()
            except requests.HTTPError as exc:
                raise DriverError("download.http_error", f"Download of {url} failed", str(exc)) from exc
            if primary:
                total = int(resp.headers.get("Content-Length") or 0)
                with self._lock:
                    self._total = total
                    self._transferred = 0
            with partial.open("wb") as handle:
                for chunk in resp.iter_content(chunk_size=self.options.block_size):
                    if self._cancelled.is_set():
                        raise DownloadCancelledError(url)
                    if not chunk:
                        continue
                    handle.write(chunk)
                    if not primary:
                        continue
                    with self._lock:
                        self._transferred += len(chunk)
                        transferred = self._transferred
                    if transferred >= next_notify:
                        next_notify = transferred + notify_every
                        self._notify(DOWNLOAD_IN_PROGRESS)
        if self._cancelled.is_set():
            raise DownloadCancelledError(url)
        partial.replace(target)

        if primary and self.options.hash_algorithm:
            actual = compute_file_digest(target, self.options.hash_algorithm)
            if actual.lower() != (self.options.hash_value or "").lower():
                target.unlink(missing_ok=True)
                raise ChecksumMismatchError(self.options.hash_value or "", actual)

    def _fetch_verifier(self) -> None:
        if self._verification_dir is None:
            return
        target = verifier_path(self._verification_dir, self.options.name, self.options.version)
        self._log.info("Downloading verifier script from %s", self.options.verifier_uri)
        self._transfer(str(self.options.verifier_uri), target, primary=False)

    def _notify(self, status: str, *, error: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {
            METRIC_JOB_ID: self.options.job_id,
            METRIC_DP_NAME: self.options.name,
            METRIC_DP_VERSION: self.options.version,
            METRIC_DL_STATUS: status,
            METRIC_DL_PROGRESS: self.progress_pct,
            METRIC_DL_SIZE: self.total_bytes,
            METRIC_DL_TRANSFERRED: self.transferred_bytes,
        }
        if error:
            payload[METRIC_DL_ERROR] = error
        self._notifier.send(self.options.requester_client_id, payload)


class HttpDownloadDriverFactory:
    """Create one :class:`HttpDownloadDriver` per download request.

    All drivers share the factory's ``requests.Session``. A session the factory
    created itself is closed by :meth:`close`; an injected one is left to its owner.
    """

    def __init__(
        self,
        *,
        artifacts: ArtifactStore,
        notifier: JobNotifier,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._artifacts = artifacts
        self._notifier = notifier
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._log = logger

    def __call__(self, options: DownloadOptions) -> HttpDownloadDriver:
        return HttpDownloadDriver(
            options,
            artifacts=self._artifacts,
            notifier=self._notifier,
            session=self._session,
            logger=self._log,
        )

    def close(self) -> None:
        if self._owns_session:
            self._session.close()


__all__ = ["HttpDownloadDriver", "HttpDownloadDriverFactory", "VERIFIER_SUFFIX", "verifier_path"]
