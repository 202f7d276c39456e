#!/usr/bin/env python3
"""
Tests for assembling update archives.
"""

import zipfile
from pathlib import Path

import pytest

from self_updater.exceptions import ArchiveAssemblyError
from self_updater.models import UpdateStatus
from self_updater.packaging import (
    PackageAssembler,
    compress_directory,
    staging_directory,
    unpack_nested_archive,
)

from helpers import make_descriptor, snapshot, zip_bytes


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    path = tmp_path / "temp"
    path.mkdir()
    return path


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    path = tmp_path / "out"
    path.mkdir()
    return path


def archive_names(archive: Path):
    with zipfile.ZipFile(archive) as zf:
        return sorted(name.rstrip("/") for name in zf.namelist())


class TestHelpers:
    def test_unpack_nested_archive(self, tmp_path: Path):
        archive = tmp_path / "bundle.zip"
        archive.write_bytes(zip_bytes({"lib/core.dll": b"core", "readme.txt": b"hi"}))

        assert unpack_nested_archive(archive) is True

        assert not archive.exists()
        assert (tmp_path / "lib" / "core.dll").read_bytes() == b"core"
        assert (tmp_path / "readme.txt").read_bytes() == b"hi"

    def test_unpack_nested_archive_ignores_other_files(self, tmp_path: Path):
        file = tmp_path / "notes.txt"
        file.write_text("x")

        assert unpack_nested_archive(file) is False
        assert file.exists()

    def test_compress_directory_keeps_empty_directories(self, tmp_path: Path):
        source = tmp_path / "src"
        (source / "empty").mkdir(parents=True)
        (source / "a.txt").write_text("a")

        archive = compress_directory(source, tmp_path / "out.zip")

        assert archive_names(archive) == ["a.txt", "empty"]

    def test_compress_directory_replaces_existing_archive(self, tmp_path: Path):
        source = tmp_path / "src"
        source.mkdir()
        (source / "new.txt").write_text("new")
        archive = tmp_path / "out.zip"
        archive.write_bytes(zip_bytes({"old.txt": b"old"}))

        compress_directory(source, archive)

        assert archive_names(archive) == ["new.txt"]

    async def test_staging_directory_replaces_stale_and_cleans_up(self, tmp_path: Path):
        staging = tmp_path / "stage"
        staging.mkdir()
        (staging / "stale.txt").write_text("left over")

        async with staging_directory(staging) as path:
            assert path == staging
            assert list(path.iterdir()) == []
            (path / "new.txt").write_text("x")

        assert not staging.exists()

    async def test_staging_directory_cleans_up_on_error(self, tmp_path: Path):
        staging = tmp_path / "stage"

        with pytest.raises(RuntimeError):
            async with staging_directory(staging):
                raise RuntimeError("boom")

        assert not staging.exists()


class TestPackageAssembler:
    async def test_no_sources_produces_nothing(self, temp_root: Path, out_dir: Path):
        assembler = PackageAssembler(make_descriptor("1.0"), temp_root=temp_root)

        assert await assembler.assemble(destination=out_dir) is None
        assert list(out_dir.iterdir()) == []
        assert list(temp_root.iterdir()) == []

    def test_staging_dir_is_keyed_by_release(self, temp_root: Path):
        assembler = PackageAssembler(make_descriptor("1.2.3"), temp_root=temp_root)
        assert assembler.staging_dir == temp_root / "Release_1.2.3"

    async def test_directory_and_file_round_trip(self, tmp_path: Path, temp_root: Path, out_dir: Path):
        file_a = tmp_path / "fileA.txt"
        file_a.write_bytes(b"alpha")
        dir_b = tmp_path / "dirB"
        (dir_b / "sub").mkdir(parents=True)
        (dir_b / "one.txt").write_bytes(b"one")
        (dir_b / "sub" / "two.txt").write_bytes(b"two")

        descriptor = make_descriptor("1.0", [str(file_a), str(dir_b)])
        archive = await PackageAssembler(descriptor, temp_root=temp_root).assemble(
            destination=out_dir)

        assert archive == out_dir / "update.zip"
        extracted = tmp_path / "extracted"
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(extracted)
        assert snapshot(extracted) == {
            "dirB": None,
            "dirB/one.txt": b"one",
            "dirB/sub": None,
            "dirB/sub/two.txt": b"two",
            "fileA.txt": b"alpha",
        }
        assert not PackageAssembler(descriptor, temp_root=temp_root).staging_dir.exists()

    async def test_nested_archive_unpacked(self, tmp_path: Path, temp_root: Path, out_dir: Path):
        bundle = tmp_path / "bundle.zip"
        bundle.write_bytes(zip_bytes({"bin/app.exe": b"exe"}))

        archive = await PackageAssembler(
            make_descriptor("1.0", [str(bundle)]), temp_root=temp_root
        ).assemble(archive_name="pkg.zip", destination=out_dir)

        assert archive_names(archive) == ["bin", "bin/app.exe"]
        assert bundle.exists()

    async def test_nested_archive_kept(self, tmp_path: Path, temp_root: Path, out_dir: Path):
        bundle = tmp_path / "bundle.zip"
        bundle.write_bytes(zip_bytes({"bin/app.exe": b"exe"}))

        archive = await PackageAssembler(
            make_descriptor("1.0", [str(bundle)]), temp_root=temp_root
        ).assemble(unpack_nested=False, destination=out_dir)

        assert archive_names(archive) == ["bundle.zip"]

    async def test_stale_staging_directory_is_discarded(self, tmp_path: Path, temp_root: Path, out_dir: Path):
        file_a = tmp_path / "fileA.txt"
        file_a.write_text("a")
        assembler = PackageAssembler(make_descriptor("1.0", [str(file_a)]), temp_root=temp_root)
        assembler.staging_dir.mkdir()
        (assembler.staging_dir / "stale.txt").write_text("old")

        archive = await assembler.assemble(destination=out_dir)

        assert archive_names(archive) == ["fileA.txt"]
        assert not assembler.staging_dir.exists()

    async def test_compress_failure_cleans_staging(self, tmp_path: Path, temp_root: Path, out_dir: Path, mocker):
        file_a = tmp_path / "fileA.txt"
        file_a.write_text("a")
        mocker.patch(
            "self_updater.packaging.compress_directory", side_effect=OSError("disk full"))
        assembler = PackageAssembler(make_descriptor("1.0", [str(file_a)]), temp_root=temp_root)

        with pytest.raises(ArchiveAssemblyError) as exc_info:
            await assembler.assemble(destination=out_dir)

        assert isinstance(exc_info.value.original_error, OSError)
        assert not assembler.staging_dir.exists()
        assert not (out_dir / "update.zip").exists()

    async def test_remote_sources_downloaded(self, file_server, temp_root: Path, out_dir: Path, tmp_path: Path):
        payload_url = file_server.add("payload.zip", zip_bytes({"data/values.bin": b"\x00\x01"}))
        readme_url = file_server.add("readme.txt", b"read me")
        local = tmp_path / "local.txt"
        local.write_text("local")
        updates = []

        async def on_progress(status, progress, message):
            updates.append(status)

        assembler = PackageAssembler(
            make_descriptor("2.0", [str(local), payload_url, readme_url]),
            temp_root=temp_root,
            progress_callback=on_progress,
        )
        archive = await assembler.assemble(destination=out_dir)

        assert file_server.hits == ["payload.zip", "readme.txt"]
        assert archive_names(archive) == ["data", "data/values.bin", "local.txt", "readme.txt"]
        assert UpdateStatus.DOWNLOADING in updates
        assert updates[-2:] == [UpdateStatus.COMPRESSING, UpdateStatus.ASSEMBLING]

    async def test_remote_failure_raises(self, file_server, temp_root: Path, out_dir: Path):
        url = file_server.url("gone.zip")
        assembler = PackageAssembler(make_descriptor("2.0", [url]), temp_root=temp_root)

        with pytest.raises(ArchiveAssemblyError) as exc_info:
            await assembler.assemble(destination=out_dir)

        assert exc_info.value.source == url
        assert not assembler.staging_dir.exists()
        assert not (out_dir / "update.zip").exists()
