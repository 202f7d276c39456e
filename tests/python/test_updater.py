#!/usr/bin/env python3
"""
Tests for the update cycle, async and synchronous.
"""

import zipfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from self_updater.core import Updater
from self_updater.exceptions import ArchiveAssemblyError, VersionArityMismatch
from self_updater.launcher import HandoffLauncher
from self_updater.models import CallerExitCode, UpdateStatus, UpdaterConfig
from self_updater.updater import SelfUpdater

from helpers import make_descriptor, zip_bytes


@pytest.fixture
def make_config(working_dir: Path, tmp_path: Path):
    def _make(url: str = "https://example.com/ver.upd", **kwargs) -> UpdaterConfig:
        kwargs.setdefault("check_connectivity", False)
        return UpdaterConfig(
            working_dir=working_dir,
            remote_manifest_url=url,
            temp_root=tmp_path / "temp",
            **kwargs,
        )

    return _make


@pytest.fixture
def fake_launcher():
    return MagicMock(spec=HandoffLauncher)


async def test_same_version_not_required(file_server, write_manifest, make_config, fake_launcher):
    write_manifest("2.0.0")
    url = file_server.add_manifest(version="2.0.0", files=[file_server.url("payload.zip")])

    updater = SelfUpdater(make_config(url), launcher=fake_launcher)

    assert await updater.update() == CallerExitCode.NOT_REQUIRED
    assert updater.check.same is True
    assert file_server.hits == ["ver.upd"]
    fake_launcher.launch.assert_not_called()


async def test_newer_version_hands_off(file_server, write_manifest, make_config, working_dir: Path, mocker):
    write_manifest("1.0.0")
    payload = file_server.add("payload.zip", zip_bytes({"app.txt": b"v2"}))
    url = file_server.add_manifest(version="1.0.1", files=[payload])
    popen = mocker.patch("self_updater.launcher.subprocess.Popen")
    exits = []
    statuses = []

    async def on_progress(status, progress, message):
        statuses.append(status)

    launcher = HandoffLauncher(working_dir, exit_func=exits.append)
    updater = SelfUpdater(make_config(url, progress_callback=on_progress), launcher=launcher)

    assert await updater.update() == CallerExitCode.HANDOFF

    assert exits == [0]
    archive = working_dir / "update.zip"
    with zipfile.ZipFile(archive) as zf:
        assert zf.read("app.txt") == b"v2"
    assert launcher.payload_file.is_file()
    command = popen.call_args.args[0]
    assert command[2] == str(archive.resolve())
    assert UpdateStatus.UPDATE_AVAILABLE in statuses
    assert statuses[-1] == UpdateStatus.LAUNCHING
    assert updater.status == UpdateStatus.LAUNCHING


async def test_newer_version_without_files(file_server, write_manifest, make_config, fake_launcher):
    write_manifest("1.0.0")
    url = file_server.add_manifest(version="1.1.0", files=None)

    updater = SelfUpdater(make_config(url), launcher=fake_launcher)

    assert await updater.update() == CallerExitCode.NOT_REQUIRED
    fake_launcher.purge_old_update.assert_called_once()
    fake_launcher.launch.assert_not_called()


async def test_older_version_not_required(file_server, write_manifest, make_config, fake_launcher):
    write_manifest("2.0.0")
    url = file_server.add_manifest(version="1.0.0", files=[file_server.url("payload.zip")])

    updater = SelfUpdater(make_config(url), launcher=fake_launcher)

    assert await updater.update() == CallerExitCode.NOT_REQUIRED
    assert updater.check.is_older is True
    assert file_server.hits == ["ver.upd"]
    fake_launcher.launch.assert_not_called()


async def test_missing_local_manifest(file_server, make_config, fake_launcher):
    url = file_server.add_manifest(version="2.0.0")

    updater = SelfUpdater(make_config(url), launcher=fake_launcher)

    assert await updater.update() == CallerExitCode.UNAVAILABLE
    assert updater.status == UpdateStatus.FAILED
    assert file_server.hits == []


async def test_unreachable_remote_manifest(file_server, write_manifest, make_config, fake_launcher):
    write_manifest("1.0.0")

    updater = SelfUpdater(make_config(file_server.url("missing.upd")), launcher=fake_launcher)

    assert await updater.update() == CallerExitCode.UNAVAILABLE


async def test_offline(write_manifest, make_config, fake_launcher, mocker):
    write_manifest("1.0.0")
    has_internet = mocker.patch("self_updater.updater.has_internet", return_value=False)

    updater = SelfUpdater(make_config(check_connectivity=True), launcher=fake_launcher)

    assert await updater.update() == CallerExitCode.UNAVAILABLE
    has_internet.assert_called_once()
    assert updater.check is None


async def test_arity_mismatch_propagates(file_server, write_manifest, make_config, fake_launcher):
    write_manifest("1.0")
    url = file_server.add_manifest(version="1.0.0")

    updater = SelfUpdater(make_config(url), launcher=fake_launcher)

    with pytest.raises(VersionArityMismatch):
        await updater.update()


async def test_assembly_failure_propagates(file_server, write_manifest, make_config, fake_launcher):
    write_manifest("1.0.0")
    url = file_server.add_manifest(version="1.0.1", files=[file_server.url("gone.zip")])

    updater = SelfUpdater(make_config(url), launcher=fake_launcher)

    with pytest.raises(ArchiveAssemblyError):
        await updater.update()
    assert updater.status == UpdateStatus.FAILED
    fake_launcher.launch.assert_not_called()


class TestSyncUpdater:
    """The synchronous wrapper runs its own event loop."""

    def test_check_for_updates(self, write_manifest, make_config, mocker):
        write_manifest("1.0.0")
        mocker.patch(
            "self_updater.updater.fetch_incoming_version",
            new=mocker.AsyncMock(return_value=make_descriptor("1.0.1")),
        )

        updater = Updater(make_config())
        result = updater.check_for_updates()

        assert result.is_newer is True
        assert updater.check is result

    def test_accepts_dict_config(self, working_dir: Path):
        updater = Updater({"working_dir": str(working_dir), "archive_name": "pkg.zip"})
        assert updater.config.archive_name == "pkg.zip"

    def test_assemble(self, make_config, tmp_path: Path, working_dir: Path):
        source = tmp_path / "fileA.txt"
        source.write_text("a")

        archive = Updater(make_config()).assemble(make_descriptor("1.0", [str(source)]))

        assert archive == working_dir.resolve() / "update.zip"
        assert archive.is_file()

    def test_update_not_required(self, write_manifest, make_config, fake_launcher, mocker):
        write_manifest("3.0")
        mocker.patch(
            "self_updater.updater.fetch_incoming_version",
            new=mocker.AsyncMock(return_value=make_descriptor("3.0")),
        )

        assert Updater(make_config(), launcher=fake_launcher).update() == CallerExitCode.NOT_REQUIRED

    def test_purge_old_update(self, make_config, working_dir: Path):
        updater = Updater(make_config())
        (working_dir / "update_unpacker.py").write_text("stale")

        updater.purge_old_update()

        assert not (working_dir / "update_unpacker.py").exists()
