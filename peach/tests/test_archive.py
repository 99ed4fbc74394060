# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import gzip
import io
import os
import tarfile
from pathlib import Path

import pytest
import zstandard

from peach.archive import Compression, archive_name, detect_compression, list_archive, package
from peach.errors import PeachIOError
from peach.manifest import parse_manifest


def _manifest(name: str = "foo", version: str = "1.0"):
	return parse_manifest(
		f'[info]\nname = "{name}"\nversion = "{version}"\ndescription = "d"\nlicense = "MIT"\n'
	)


def _write_file(path: Path, data: bytes) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_bytes(data)


def _file_members(path: Path) -> dict[str, bytes]:
	raw = path.read_bytes()
	if raw.startswith(b"\x1f\x8b"):
		payload = gzip.decompress(raw)
	else:
		payload = zstandard.ZstdDecompressor().decompressobj().decompress(raw)
	out: dict[str, bytes] = {}
	with tarfile.open(fileobj=io.BytesIO(payload), mode="r:") as tar:
		for member in tar.getmembers():
			if member.isfile():
				f = tar.extractfile(member)
				assert f is not None
				out[member.name] = f.read()
	return out


@pytest.fixture()
def staging(tmp_path: Path) -> Path:
	root = tmp_path / "stage"
	_write_file(root / "bin" / "foo", b"#!/bin/sh\necho foo\n")
	_write_file(root / "lib" / "bar.so", b"\x7fELF fake")
	return root


def test_archive_name() -> None:
	assert archive_name(_manifest("foo", "1.0")) == "foo-1.0.peach"


@pytest.mark.parametrize("compression", list(Compression))
def test_package_contains_exactly_the_staged_files(
	staging: Path,
	tmp_path: Path,
	compression: Compression,
) -> None:
	out = tmp_path / "out"
	out.mkdir()
	path = package(staging, _manifest(), compression=compression, out_dir=out)
	assert path == out / "foo-1.0.peach"
	assert detect_compression(path) is compression
	files = _file_members(path)
	assert files == {"bin/foo": b"#!/bin/sh\necho foo\n", "lib/bar.so": b"\x7fELF fake"}
	assert list_archive(path) == ["bin", "bin/foo", "lib", "lib/bar.so"]


def test_package_defaults_to_gzip_in_cwd(staging: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
	monkeypatch.chdir(tmp_path)
	path = package(staging, _manifest("bar", "2.3.4"))
	assert path.resolve() == (tmp_path / "bar-2.3.4.peach").resolve()
	assert path.read_bytes()[:2] == b"\x1f\x8b"


def test_compression_accepts_string_values(staging: Path, tmp_path: Path) -> None:
	path = package(staging, _manifest(), compression="zstd", out_dir=tmp_path)  # type: ignore[arg-type]
	assert detect_compression(path) is Compression.ZSTD


def test_empty_directories_and_symlinks_are_kept(staging: Path, tmp_path: Path) -> None:
	(staging / "share" / "empty").mkdir(parents=True)
	(staging / "bin" / "foo-link").symlink_to("foo")
	path = package(staging, _manifest(), out_dir=tmp_path)
	names = list_archive(path)
	assert "share/empty" in names
	assert "bin/foo-link" in names
	assert not any(n in (".", "") or n.startswith("/") for n in names)


def test_archive_inside_staging_is_not_packed_into_itself(staging: Path) -> None:
	path = package(staging, _manifest(), out_dir=staging)
	assert "foo-1.0.peach" not in list_archive(path)


def test_repackaging_overwrites_previous_archive(staging: Path, tmp_path: Path) -> None:
	first = package(staging, _manifest(), out_dir=tmp_path)
	(staging / "bin" / "foo").unlink()
	second = package(staging, _manifest(), out_dir=tmp_path)
	assert first == second
	assert "bin/foo" not in list_archive(second)


def test_missing_staging_dir(tmp_path: Path) -> None:
	with pytest.raises(PeachIOError, match="does not exist"):
		package(tmp_path / "nope", _manifest(), out_dir=tmp_path)
	assert not (tmp_path / "foo-1.0.peach").exists()


def test_unwritable_output_reports_path(staging: Path, tmp_path: Path) -> None:
	out = tmp_path / "missing-dir"
	with pytest.raises(PeachIOError) as excinfo:
		package(staging, _manifest(), out_dir=out)
	assert excinfo.value.operation == "write"
	assert excinfo.value.path == str(out / "foo-1.0.peach")


def test_partial_archive_is_removed_on_failure(
	staging: Path,
	tmp_path: Path,
	monkeypatch: pytest.MonkeyPatch,
) -> None:
	def _boom(self, *args, **kwargs):
		raise OSError(28, "No space left on device")

	monkeypatch.setattr(tarfile.TarFile, "add", _boom)
	with pytest.raises(PeachIOError, match="No space left"):
		package(staging, _manifest(), out_dir=tmp_path)
	assert not (tmp_path / "foo-1.0.peach").exists()


def test_unreadable_subdirectory_fails_instead_of_dropping_files(
	staging: Path,
	tmp_path: Path,
	monkeypatch: pytest.MonkeyPatch,
) -> None:
	real_scandir = os.scandir

	def _scandir(path="."):
		if Path(path).name == "lib":
			raise PermissionError(13, "Permission denied", str(path))
		return real_scandir(path)

	monkeypatch.setattr(os, "scandir", _scandir)
	with pytest.raises(PeachIOError, match="Permission denied") as excinfo:
		package(staging, _manifest(), out_dir=tmp_path)
	assert excinfo.value.operation == "read"
	assert excinfo.value.path is not None and excinfo.value.path.endswith("lib")
	assert not (tmp_path / "foo-1.0.peach").exists()
