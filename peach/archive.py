# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Package archive writer.

A package is a tar stream of the staging directory, compressed with either
gzip (DEFLATE) or zstd, and named `<name>-<version>.peach`. The staging
directory itself is the archive root: `staging/bin/foo` is stored as
`bin/foo`. Entries are added in sorted path order.
"""

from __future__ import annotations

import contextlib
import gzip
import logging
import os
import tarfile
from enum import Enum
from pathlib import Path
from typing import BinaryIO

import zstandard

from peach.errors import PeachIOError, io_error
from peach.manifest import Manifest

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = "peach"
GZIP_LEVEL = 6  # zlib's default level
ZSTD_LEVEL = 19

_GZIP_MAGIC = b"\x1f\x8b"
_ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


class Compression(str, Enum):
	GZIP = "gzip"
	ZSTD = "zstd"


def archive_name(manifest: Manifest) -> str:
	return f"{manifest.info.name}-{manifest.info.version}.{ARCHIVE_EXTENSION}"


def _compressed_writer(stack: contextlib.ExitStack, raw: BinaryIO, compression: Compression) -> BinaryIO:
	if compression is Compression.GZIP:
		return stack.enter_context(gzip.GzipFile(filename="", mode="wb", fileobj=raw, compresslevel=GZIP_LEVEL, mtime=0))
	if compression is Compression.ZSTD:
		cctx = zstandard.ZstdCompressor(level=ZSTD_LEVEL)
		return stack.enter_context(cctx.stream_writer(raw, closefd=False))
	raise ValueError(f"unknown compression {compression!r}")


def _raise(err: OSError) -> None:
	raise err


def _staged_entries(staging_dir: Path, *, skip: Path) -> list[tuple[Path, str]]:
	"""(absolute path, archive name) for everything under `staging_dir`, sorted."""
	out: list[tuple[Path, str]] = []
	# os.walk skips unreadable directories unless onerror raises
	for dirpath, dirnames, filenames in os.walk(staging_dir, onerror=_raise):
		for name in dirnames + filenames:
			full = Path(dirpath) / name
			if full == skip:
				continue
			out.append((full, full.relative_to(staging_dir).as_posix()))
	out.sort(key=lambda item: item[1])
	return out


def package(
	staging_dir: Path,
	manifest: Manifest,
	*,
	compression: Compression = Compression.GZIP,
	out_dir: Path | None = None,
) -> Path:
	"""
	Write `<name>-<version>.peach` containing the whole staging tree.

	The archive goes to `out_dir` (default: current working directory) and its
	path is returned. The compressor and the file are closed on every exit
	path; if writing fails the partial archive is removed and `PeachIOError`
	is raised.
	"""
	staging_dir = Path(staging_dir)
	if not staging_dir.is_dir():
		raise PeachIOError(
			message=f"staging directory does not exist: {staging_dir}",
			path=str(staging_dir),
			operation="read",
		)
	compression = Compression(compression)
	target_dir = Path(out_dir) if out_dir is not None else Path(os.getcwd())
	archive_path = target_dir / archive_name(manifest)

	try:
		entries = _staged_entries(staging_dir.resolve(), skip=archive_path.resolve())
	except OSError as err:
		raise io_error(err, path=err.filename or staging_dir, operation="read") from err

	try:
		with contextlib.ExitStack() as stack:
			raw = stack.enter_context(open(archive_path, "wb"))
			stream = _compressed_writer(stack, raw, compression)
			tar = stack.enter_context(tarfile.open(fileobj=stream, mode="w|", format=tarfile.PAX_FORMAT))
			for full, arcname in entries:
				tar.add(str(full), arcname=arcname, recursive=False)
	except (OSError, tarfile.TarError) as err:
		_remove_partial(archive_path)
		if isinstance(err, OSError):
			raise io_error(err, path=archive_path, operation="write") from err
		raise PeachIOError(message=f"cannot write {archive_path}: {err}", path=str(archive_path), operation="write") from err
	except BaseException:
		_remove_partial(archive_path)
		raise

	logger.info("Created package: %s", archive_path.name)
	return archive_path


def _remove_partial(path: Path) -> None:
	try:
		path.unlink()
	except FileNotFoundError:
		pass
	except OSError as err:
		logger.warning("could not remove partial archive %s: %s", path, err)


def detect_compression(path: Path) -> Compression:
	with open(path, "rb") as f:
		head = f.read(4)
	if head.startswith(_GZIP_MAGIC):
		return Compression.GZIP
	if head.startswith(_ZSTD_MAGIC):
		return Compression.ZSTD
	raise ValueError(f"{path} is not a gzip or zstd compressed package")


def list_archive(path: Path) -> list[str]:
	"""Member names of a package archive, in stored order."""
	compression = detect_compression(path)
	with contextlib.ExitStack() as stack:
		raw = stack.enter_context(open(path, "rb"))
		if compression is Compression.GZIP:
			stream = stack.enter_context(gzip.GzipFile(fileobj=raw, mode="rb"))
		else:
			stream = stack.enter_context(zstandard.ZstdDecompressor().stream_reader(raw, closefd=False))
		tar = stack.enter_context(tarfile.open(fileobj=stream, mode="r|"))
		return [member.name for member in tar]
