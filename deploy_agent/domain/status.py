"""Reported status vocabularies, response codes and wire metric names."""

from __future__ import annotations

from typing import Literal

# ---- Response codes ----
RESPONSE_OK = 200
RESPONSE_BAD_REQUEST = 400
RESPONSE_NOT_FOUND = 404
RESPONSE_ERROR = 500
RESPONSE_CODES: tuple[int, ...] = (
    RESPONSE_OK,
    RESPONSE_BAD_REQUEST,
    RESPONSE_NOT_FOUND,
    RESPONSE_ERROR,
)

# ---- Verbs ----
Verb = Literal["READ", "EXEC", "DELETE"]
VERB_READ: Verb = "READ"
VERB_EXEC: Verb = "EXEC"
VERB_DELETE: Verb = "DELETE"
VERB_ALIASES: dict[str, Verb] = {
    "READ": VERB_READ,
    "GET": VERB_READ,
    "EXEC": VERB_EXEC,
    "POST": VERB_EXEC,
    "PUT": VERB_EXEC,
    "DELETE": VERB_DELETE,
    "DEL": VERB_DELETE,
}

# ---- Resources ----
RESOURCE_DOWNLOAD = "download"
RESOURCE_INSTALL = "install"
RESOURCE_UNINSTALL = "uninstall"
RESOURCE_PACKAGES = "packages"
RESOURCE_MODULES = "modules"
MODULE_ACTION_START = "start"
MODULE_ACTION_STOP = "stop"

# ---- Download status ----
DownloadStatus = Literal["IN_PROGRESS", "COMPLETED", "FAILED", "ALREADY DONE", "CANCELLED"]
DOWNLOAD_IN_PROGRESS: DownloadStatus = "IN_PROGRESS"
DOWNLOAD_COMPLETED: DownloadStatus = "COMPLETED"
DOWNLOAD_FAILED: DownloadStatus = "FAILED"
DOWNLOAD_ALREADY_DONE: DownloadStatus = "ALREADY DONE"
DOWNLOAD_CANCELLED: DownloadStatus = "CANCELLED"

# ---- Install / uninstall status ----
InstallStatus = Literal["IDLE", "IN_PROGRESS", "COMPLETED", "FAILED", "ALREADY DONE"]
INSTALL_IDLE: InstallStatus = "IDLE"
INSTALL_IN_PROGRESS: InstallStatus = "IN_PROGRESS"
INSTALL_COMPLETED: InstallStatus = "COMPLETED"
INSTALL_FAILED: InstallStatus = "FAILED"
INSTALL_ALREADY_DONE: InstallStatus = "ALREADY DONE"

UninstallStatus = InstallStatus
UNINSTALL_IDLE: UninstallStatus = "IDLE"
UNINSTALL_IN_PROGRESS: UninstallStatus = "IN_PROGRESS"
UNINSTALL_COMPLETED: UninstallStatus = "COMPLETED"
UNINSTALL_FAILED: UninstallStatus = "FAILED"

# ---- Metrics in synchronous replies ----
METRIC_DOWNLOAD_STATUS = "download.status"
METRIC_INSTALL_STATUS = "install.status"
METRIC_UNINSTALL_STATUS = "uninstall.status"
METRIC_REQUESTER_CLIENT_ID = "requester.client.id"

METRIC_JOB_ID = "job.id"
METRIC_DP_NAME = "dp.name"
METRIC_DP_VERSION = "dp.version"
METRIC_DP_URI = "dp.uri"
METRIC_DL_STATUS = "dp.download.status"
METRIC_DL_PROGRESS = "dp.download.progress"
METRIC_DL_SIZE = "dp.download.size"
METRIC_DL_TRANSFERRED = "dp.download.transferred"
METRIC_DL_ERROR = "dp.download.error"
METRIC_INSTALL_STATUS_DP = "dp.install.status"
METRIC_INSTALL_PROGRESS = "dp.install.progress"
METRIC_INSTALL_ERROR = "dp.install.error"
METRIC_UNINSTALL_STATUS_DP = "dp.uninstall.status"
METRIC_UNINSTALL_PROGRESS = "dp.uninstall.progress"
METRIC_UNINSTALL_ERROR = "dp.uninstall.error"

# ---- Notification message types ----
NOTIFY_DOWNLOAD = "download"
NOTIFY_INSTALL = "install"
NOTIFY_UNINSTALL = "uninstall"
