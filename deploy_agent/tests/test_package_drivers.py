from __future__ import annotations

import json
import zipfile

import pytest

from deploy_agent.adapters.http_download import verifier_path
from deploy_agent.adapters.notifications import JobNotifier, NotificationOutbox
from deploy_agent.adapters.package_installer import FilesystemInstallDriver, read_components
from deploy_agent.adapters.package_store import PackageStore
from deploy_agent.adapters.package_uninstaller import FilesystemUninstallDriver
from deploy_agent.domain.documents import ComponentInfo, PackageInfo
from deploy_agent.domain.errors import DriverError, PackageNotInstalledError
from deploy_agent.domain.options import InstallOptions, UninstallOptions


def _install_options(**overrides) -> InstallOptions:
    params = {"dp.name": "pkg", "dp.version": "1.0", "job.id": 3, "requester.client.id": "cloud"}
    params.update(overrides)
    return InstallOptions.from_params(params)


def _zip(path, entries):
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return path


@pytest.fixture
def outbox():
    return NotificationOutbox()


@pytest.fixture
def store(tmp_path):
    return PackageStore(tmp_path / "packages")


@pytest.fixture
def installer(tmp_path, store, outbox):
    restarts = []
    driver = FilesystemInstallDriver(
        store=store,
        notifier=JobNotifier(outbox, "device-1", "install"),
        verification_dir=tmp_path / "verify",
        restart_system=restarts.append,
    )
    driver.restarts = restarts
    return driver


# ---- package store ----
def test_store_records_lists_and_forgets(store):
    store.record(PackageInfo("zeta", "2", (ComponentInfo("zeta.a", "2"),)))
    store.record(PackageInfo("alpha", "1"))

    assert [p.name for p in store.list_packages()] == ["alpha", "zeta"]
    assert store.get("zeta").components == (ComponentInfo("zeta.a", "2"),)
    assert json.loads(store.index_path.read_text())["alpha"]["version"] == "1"

    assert store.forget("alpha") is True
    assert store.forget("alpha") is False
    assert store.get("alpha") is None


def test_store_ignores_corrupt_index(store):
    store.index_path.parent.mkdir(parents=True)
    store.index_path.write_text("{not json")

    assert store.list_packages() == []
    store.record(PackageInfo("pkg", "1"))
    assert store.get("pkg").version == "1"


# ---- install ----
def test_install_package_extracts_and_records(tmp_path, installer, store, outbox):
    manifest = {"components": [{"name": "pkg.core", "version": "1.0.1"}, {"name": "pkg.ui"}]}
    artifact = _zip(tmp_path / "pkg-1.0.dp", {"manifest.json": json.dumps(manifest), "bin/run": "echo"})

    installer.install_package(_install_options(), artifact)

    assert (store.package_dir("pkg") / "bin" / "run").read_text() == "echo"
    assert store.get("pkg") == PackageInfo(
        "pkg", "1.0", (ComponentInfo("pkg.core", "1.0.1"), ComponentInfo("pkg.ui", "1.0"))
    )
    statuses = [n.payload["dp.install.status"] for n in reversed(outbox.recent())]
    assert statuses == ["IN_PROGRESS", "IN_PROGRESS", "COMPLETED"]
    assert outbox.recent(1)[0].requester_client_id == "cloud"
    assert installer.restarts == []


def test_reinstall_replaces_previous_content_and_keeps_backup(tmp_path, installer, store):
    installer.install_package(_install_options(), _zip(tmp_path / "a.dp", {"old.txt": "1"}))
    installer.install_package(
        _install_options(**{"dp.version": "2.0"}), _zip(tmp_path / "b.dp", {"new.txt": "2"})
    )

    package_dir = store.package_dir("pkg")
    assert (package_dir / "new.txt").exists()
    assert not (package_dir / "old.txt").exists()
    assert (store.packages_dir / ".backup" / "pkg" / "old.txt").exists()
    assert store.get("pkg").version == "2.0"


def test_install_rejects_path_traversal(tmp_path, installer, store):
    artifact = _zip(tmp_path / "evil.dp", {"../escape.txt": "x"})

    with pytest.raises(DriverError) as excinfo:
        installer.install_package(_install_options(), artifact)

    assert excinfo.value.code == "install.unsafe_archive"
    assert not (store.packages_dir.parent / "escape.txt").exists()
    assert store.get("pkg") is None


def test_install_rejects_non_zip(tmp_path, installer):
    artifact = tmp_path / "pkg-1.0.dp"
    artifact.write_bytes(b"not a zip")

    with pytest.raises(DriverError) as excinfo:
        installer.install_package(_install_options(), artifact)
    assert excinfo.value.code == "install.invalid_archive"


def test_install_restart_requested(tmp_path, installer):
    options = _install_options(**{"dp.reboot": True, "dp.reboot.delay": 250})
    installer.install_package(options, _zip(tmp_path / "pkg.dp", {"a": "b"}))
    assert installer.restarts == [250]


def test_read_components_without_manifest(tmp_path):
    (tmp_path / "b").mkdir()
    (tmp_path / "a.txt").write_text("x")
    assert read_components(tmp_path, "3") == [ComponentInfo("a.txt", "3"), ComponentInfo("b", "3")]


def test_read_components_rejects_manifest_without_components(tmp_path):
    (tmp_path / "manifest.json").write_text(json.dumps({"name": "pkg"}))
    with pytest.raises(DriverError):
        read_components(tmp_path, "1")


def test_system_update_runs_script_and_verifier(tmp_path, installer, outbox):
    marker = tmp_path / "applied"
    script = tmp_path / "os-5.sh"
    script.write_text(f"echo applied > '{marker}'\n")
    verifier = verifier_path(tmp_path / "verify", "os", "5")
    verifier.parent.mkdir(parents=True)
    verifier.write_text(f"test -f '{marker}'\n")

    installer.install_system_update(_install_options(**{"dp.name": "os", "dp.version": "5"}), script)

    assert marker.exists()
    assert outbox.recent(1)[0].payload["dp.install.status"] == "COMPLETED"


def test_failing_verifier_fails_system_update(tmp_path, installer):
    script = tmp_path / "os-5.sh"
    script.write_text("exit 0\n")
    verifier = verifier_path(tmp_path / "verify", "os", "5")
    verifier.parent.mkdir(parents=True)
    verifier.write_text("echo nope >&2; exit 3\n")

    with pytest.raises(DriverError) as excinfo:
        installer.install_system_update(_install_options(**{"dp.name": "os", "dp.version": "5"}), script)

    assert excinfo.value.code == "install.verification_failed"
    assert "exit=3" in excinfo.value.hint


def test_install_failed_notifies_error(installer, outbox):
    installer.install_failed(_install_options(), "pkg-1.0.dp", RuntimeError("disk full"))

    payload = outbox.recent(1)[0].payload
    assert payload["dp.install.status"] == "FAILED"
    assert payload["dp.install.error"] == "disk full"


# ---- uninstall ----
def test_uninstall_removes_package(tmp_path, installer, store, outbox):
    installer.install_package(_install_options(), _zip(tmp_path / "pkg.dp", {"a": "b"}))
    uninstaller = FilesystemUninstallDriver(store=store, notifier=JobNotifier(outbox, "device-1", "uninstall"))

    uninstaller.uninstall(UninstallOptions.from_params({"dp.name": "pkg", "job.id": 4}), "pkg")

    assert not store.package_dir("pkg").exists()
    assert store.get("pkg") is None
    last = outbox.recent(1)[0]
    assert last.topic == "NOTIFY/device-1/uninstall"
    assert last.payload["dp.uninstall.status"] == "COMPLETED"


def test_uninstall_unknown_package(store, outbox):
    uninstaller = FilesystemUninstallDriver(store=store, notifier=JobNotifier(outbox, "device-1", "uninstall"))
    options = UninstallOptions.from_params({"dp.name": "ghost", "job.id": 4})

    with pytest.raises(PackageNotInstalledError):
        uninstaller.uninstall(options, "ghost")
    assert len(outbox) == 0

    uninstaller.uninstall_failed(options, "ghost", PackageNotInstalledError("ghost"))
    assert outbox.recent(1)[0].payload["dp.uninstall.error"] == "Package ghost is not installed"
