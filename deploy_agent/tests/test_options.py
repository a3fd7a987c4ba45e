from __future__ import annotations

import hashlib

import pytest

from deploy_agent.domain.errors import MalformedRequestError
from deploy_agent.domain.messages import OperationRequest
from deploy_agent.domain.options import DownloadOptions, InstallOptions, UninstallOptions


def test_download_options_defaults_and_aliases():
    opts = DownloadOptions.from_params(
        {
            "dp.uri": "https://repo.example/pkg.dp",
            "dp.name": "pkg",
            "dp.version": "2.1",
            "job.id": "12",
        }
    )

    assert opts.job_id == 12
    assert opts.protocol == "HTTP"
    assert opts.block_size == 4096
    assert opts.notify_block_size == 2048 * 1024
    assert opts.timeout_ms == 4000
    assert opts.install is True
    assert opts.force is False
    assert opts.artifact_name == "pkg-2.1.dp"


def test_system_update_artifact_is_script():
    opts = InstallOptions.from_params(
        {"dp.name": "os", "dp.version": "5", "job.id": 1, "dp.install.system.update": True}
    )
    assert opts.artifact_name == "os-5.sh"


@pytest.mark.parametrize(
    "params",
    [
        {"dp.name": "pkg", "dp.version": "1", "job.id": 1},
        {"dp.uri": "ftp://x/pkg.dp", "dp.name": "pkg", "dp.version": "1", "job.id": 1},
        {"dp.uri": "http://x/pkg.dp", "dp.name": "pkg", "dp.version": "1", "job.id": "abc"},
        {"dp.uri": "http://x/pkg.dp", "dp.name": "../etc", "dp.version": "1", "job.id": 1},
        {"dp.uri": "http://x/pkg.dp", "dp.name": "pkg", "dp.version": "1", "job.id": 1, "dp.download.hash": "nope"},
        {"dp.uri": "http://x/pkg.dp", "dp.name": "pkg", "dp.version": "1", "job.id": 1, "dp.download.protocol": "FTP"},
    ],
)
def test_download_options_reject_malformed(params):
    with pytest.raises(MalformedRequestError) as excinfo:
        DownloadOptions.from_params(params)
    assert excinfo.value.code == "request.malformed"


def test_hash_spec_is_normalized():
    digest = hashlib.sha256(b"x").hexdigest().upper()
    opts = DownloadOptions.from_params(
        {
            "dp.uri": "http://x/pkg.dp",
            "dp.name": "pkg",
            "dp.version": "1",
            "job.id": 1,
            "dp.download.hash": f"SHA256:{digest}",
        }
    )
    assert opts.hash_algorithm == "sha256"
    assert opts.hash_value == digest.lower()


def test_install_options_subset_of_download_options():
    opts = DownloadOptions.from_params(
        {
            "dp.uri": "http://x/pkg.dp",
            "dp.name": "pkg",
            "dp.version": "1",
            "job.id": 4,
            "request.type": "fw",
            "dp.reboot": "true",
            "dp.reboot.delay": 500,
        }
    )
    install = opts.install_options()

    assert type(install) is InstallOptions
    assert (install.name, install.version, install.job_id) == ("pkg", "1", 4)
    assert install.request_type == "fw"
    assert install.reboot is True
    assert install.reboot_delay_ms == 500


def test_uninstall_requires_name_and_job():
    with pytest.raises(MalformedRequestError):
        UninstallOptions.from_params({"job.id": 1})
    opts = UninstallOptions.from_params({"dp.name": "pkg", "job.id": 1})
    assert opts.reboot is False


@pytest.mark.parametrize("name", [".backup", ".staging-x", "_packages.json"])
def test_reserved_package_names_are_rejected(name):
    with pytest.raises(MalformedRequestError):
        InstallOptions.from_params({"dp.name": name, "dp.version": "1.0", "job.id": 1})
    with pytest.raises(MalformedRequestError):
        UninstallOptions.from_params({"dp.name": name, "job.id": 1})
    with pytest.raises(MalformedRequestError):
        DownloadOptions.from_params(
            {"dp.uri": "https://repo.example/x.dp", "dp.name": name, "dp.version": "1.0", "job.id": 1}
        )


def test_requester_id_from_request_fills_options():
    request = OperationRequest.from_topic(
        "uninstall", "EXEC", {"dp.name": "pkg", "job.id": 1}, requester_client_id="cloud"
    )
    assert UninstallOptions.from_params(request.option_params()).requester_client_id == "cloud"


def test_requester_id_falls_back_to_parameter():
    request = OperationRequest.from_topic("download", "post", {"requester.client.id": "ops"})
    assert request.requester_client_id == "ops"
    assert request.verb == "EXEC"
    assert request.resource == "download"
