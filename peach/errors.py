# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True)
class PeachError(Exception):
	"""
	A structured, serializable error for peach tooling.

	Every failure carries a stable `reason_code` plus whatever context is known
	at the raise site (file path, manifest field, step name, ...).
	"""

	reason_code: ClassVar[str] = "PEACH_ERROR"

	message: str
	path: str | None = None
	operation: str | None = None  # "read" | "write" | "mkdir" | ...
	field: str | None = None  # manifest field path, e.g. "steps[2].command"
	variables: list[str] | None = None
	algorithm: str | None = None
	checksum: str | None = None
	step: str | None = None
	exit_status: int | None = None

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"message": self.message,
			"path": self.path,
			"operation": self.operation,
			"field": self.field,
			"variables": list(self.variables) if self.variables is not None else None,
			"algorithm": self.algorithm,
			"checksum": self.checksum,
			"step": self.step,
			"exit_status": self.exit_status,
		}

	def format_human(self) -> str:
		parts: list[str] = [f"[{self.reason_code}] {self.message}"]
		if self.field:
			parts.append(f"field={self.field}")
		if self.variables:
			parts.append(f"variables={','.join(self.variables)}")
		if self.step is not None:
			parts.append(f"step={self.step}")
		if self.exit_status is not None:
			parts.append(f"exit_status={self.exit_status}")
		if self.operation:
			parts.append(f"operation={self.operation}")
		if self.path:
			parts.append(f"path={self.path}")
		if self.algorithm:
			parts.append(f"algorithm={self.algorithm}")
		if self.checksum:
			parts.append(f"checksum={self.checksum}")
		return " ".join(parts)


@dataclass(frozen=True)
class FormatError(PeachError):
	"""Manifest text is not valid TOML or does not match the manifest schema."""

	reason_code: ClassVar[str] = "MANIFEST_FORMAT_INVALID"


@dataclass(frozen=True)
class LicenseError(PeachError):
	reason_code: ClassVar[str] = "LICENSE_INVALID"


@dataclass(frozen=True)
class VariableError(PeachError):
	"""A `%{name}` placeholder references a name missing from the variable table."""

	reason_code: ClassVar[str] = "VARIABLE_UNDEFINED"


@dataclass(frozen=True)
class ChecksumFormatError(PeachError):
	reason_code: ClassVar[str] = "CHECKSUM_FORMAT_INVALID"


@dataclass(frozen=True)
class UnsupportedAlgorithmError(PeachError):
	reason_code: ClassVar[str] = "CHECKSUM_ALGORITHM_UNSUPPORTED"


@dataclass(frozen=True)
class ChecksumMismatchError(PeachError):
	reason_code: ClassVar[str] = "CHECKSUM_MISMATCH"


@dataclass(frozen=True)
class PeachIOError(PeachError):
	"""
	Filesystem failure (manifest load, checksum read, archive write).

	Always raised `from` the underlying `OSError` so the original errno and
	strerror stay reachable through `__cause__`.
	"""

	reason_code: ClassVar[str] = "IO_ERROR"


@dataclass(frozen=True)
class StepError(PeachError):
	reason_code: ClassVar[str] = "STEP_FAILED"


def io_error(err: OSError, *, path: object, operation: str) -> PeachIOError:
	"""Wrap an `OSError` with the path and operation that triggered it."""
	reason = err.strerror or str(err)
	return PeachIOError(
		message=f"cannot {operation} {path}: {reason}",
		path=str(path),
		operation=operation,
	)
