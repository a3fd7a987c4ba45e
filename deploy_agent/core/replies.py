"""Builders for the synchronous replies the orchestration layer sends."""

from __future__ import annotations

from typing import Optional, Union

from deploy_agent.domain.messages import OperationResponse, utc_now_iso
from deploy_agent.domain.options import DownloadOptions, InstallOptions
from deploy_agent.domain.ports import DownloadDriver
from deploy_agent.domain.status import (
    DOWNLOAD_ALREADY_DONE,
    DOWNLOAD_IN_PROGRESS,
    INSTALL_IDLE,
    INSTALL_IN_PROGRESS,
    METRIC_DL_PROGRESS,
    METRIC_DL_SIZE,
    METRIC_DL_STATUS,
    METRIC_DL_TRANSFERRED,
    METRIC_DP_NAME,
    METRIC_DP_URI,
    METRIC_DP_VERSION,
    METRIC_INSTALL_STATUS_DP,
    METRIC_JOB_ID,
    RESPONSE_ERROR,
    RESPONSE_OK,
)


def reject_busy(
    response: OperationResponse,
    body: str,
    status_metric: str,
    in_progress: str,
    exc: Optional[BaseException] = None,
) -> None:
    """Conflict reply: ERROR plus the category status metric set to its in-progress value."""
    response.fail(RESPONSE_ERROR, body, exc)
    response.add_metric(status_metric, in_progress)


def download_in_progress(response: OperationResponse, driver: DownloadDriver, options: DownloadOptions) -> None:
    response.code = RESPONSE_OK
    response.timestamp = utc_now_iso()
    response.add_metric(METRIC_DL_STATUS, DOWNLOAD_IN_PROGRESS)
    response.add_metric(METRIC_DL_PROGRESS, driver.progress_pct)
    response.add_metric(METRIC_DL_SIZE, driver.total_bytes)
    response.add_metric(METRIC_DL_TRANSFERRED, driver.transferred_bytes)
    response.add_metric(METRIC_DP_URI, options.uri)
    response.add_metric(METRIC_DP_NAME, options.name)
    response.add_metric(METRIC_DP_VERSION, options.version)
    response.add_metric(METRIC_JOB_ID, options.job_id)


def download_already_done(response: OperationResponse) -> None:
    response.code = RESPONSE_OK
    response.timestamp = utc_now_iso()
    response.add_metric(METRIC_DL_STATUS, DOWNLOAD_ALREADY_DONE)


def install_in_progress(response: OperationResponse, operation: Union[InstallOptions, str, None]) -> None:
    response.code = RESPONSE_OK
    response.timestamp = utc_now_iso()
    response.add_metric(METRIC_INSTALL_STATUS_DP, INSTALL_IN_PROGRESS)
    if isinstance(operation, InstallOptions):
        response.add_metric(METRIC_DP_NAME, operation.name)
        response.add_metric(METRIC_DP_VERSION, operation.version)
        response.add_metric(METRIC_JOB_ID, operation.job_id)
    elif operation:
        response.add_metric(METRIC_DP_NAME, operation)


def install_idle(response: OperationResponse) -> None:
    response.code = RESPONSE_OK
    response.timestamp = utc_now_iso()
    response.add_metric(METRIC_INSTALL_STATUS_DP, INSTALL_IDLE)


__all__ = [
    "download_already_done",
    "download_in_progress",
    "install_idle",
    "install_in_progress",
    "reject_busy",
]
