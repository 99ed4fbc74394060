# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Callable

import blake3

from peach.errors import ChecksumFormatError, UnsupportedAlgorithmError, io_error

logger = logging.getLogger(__name__)


def sha256_hex(data: bytes) -> str:
	return hashlib.sha256(data).hexdigest()


def blake3_hex(data: bytes) -> str:
	return blake3.blake3(data).hexdigest()


# algorithm tag -> lowercase hex digest of the given bytes
ALGORITHMS: dict[str, Callable[[bytes], str]] = {
	"blake3": blake3_hex,
	"sha256": sha256_hex,
}


def split_checksum(checksum: str) -> tuple[str, str]:
	"""Split `"<algorithm>:<hex>"` on the first colon."""
	algorithm, sep, expected = checksum.partition(":")
	if not sep:
		raise ChecksumFormatError(
			message=f"checksum must look like '<algorithm>:<hex>', got {checksum!r}",
			checksum=checksum,
		)
	return algorithm, expected


def _hash_fn(algorithm: str) -> Callable[[bytes], str]:
	try:
		return ALGORITHMS[algorithm]
	except KeyError:
		raise UnsupportedAlgorithmError(
			message=f"unsupported checksum algorithm {algorithm!r} (supported: {', '.join(sorted(ALGORITHMS))})",
			algorithm=algorithm,
		) from None


def digest_hex(data: bytes, algorithm: str) -> str:
	return _hash_fn(algorithm)(data)


def _read(path: Path) -> bytes:
	try:
		return Path(path).read_bytes()
	except OSError as err:
		raise io_error(err, path=path, operation="read") from err


def verify(path: Path, checksum: str) -> bool:
	"""
	Check the file at `path` against a typed checksum string.

	The whole file is read into memory, hashed with the algorithm named before
	the first `:` and compared with the hex after it. The comparison is exact,
	so the expected digest must be lowercase hex.

	Raises:
	  PeachIOError: `path` cannot be read.
	  ChecksumFormatError: `checksum` has no `:`.
	  UnsupportedAlgorithmError: algorithm is not one of `ALGORITHMS`.
	"""
	data = _read(path)
	algorithm, expected = split_checksum(checksum)
	got = digest_hex(data, algorithm)
	ok = got == expected
	if not ok:
		logger.debug("checksum mismatch for %s: expected %s:%s, got %s:%s", path, algorithm, expected, algorithm, got)
	return ok


def compute_checksum(path: Path, algorithm: str = "sha256") -> str:
	"""Return the `"<algorithm>:<hex>"` checksum string for the file at `path`."""
	fn = _hash_fn(algorithm)
	return f"{algorithm}:{fn(_read(path))}"
