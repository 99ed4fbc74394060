# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Build manifest model and parser.

A manifest is a TOML document:

	[info]
	name = "foo"
	version = "1.0"
	description = "Foo utilities"
	license = "MIT"

	[dependencies]
	required = ["libc"]
	optional = []
	build = ["make"]

	[[sources]]
	url = "https://example.org/foo-%{version}.tar.gz"
	checksum = "sha256:<hex>"

	[[steps]]
	name = "build"
	runner = "shell"
	command = "make DESTDIR=%{pkgdir} install"

	[[steps]]
	name = "docs"
	path = "doc/foo.1"

	[directories]
	bin = "%{pkgdir}/usr/bin"

Steps are untagged on the wire: `runner` + `command` makes a command step,
`path` makes a move step. An explicit `type = "command" | "move"` key is
accepted as well. Unknown keys are ignored so newer manifests still load.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, ClassVar, Mapping, Union

from peach.errors import FormatError, LicenseError, VariableError, io_error
from peach.license import LicenseExpression, parse_license
from peach.runner import Runner, get_runner, runner_names
from peach.variables import Substituter, VariableTable, default_substituter, find_placeholders

logger = logging.getLogger(__name__)

VERSION_VAR = "version"
PKGDIR_VAR = "pkgdir"
DEFAULT_PKGDIR_NAME = "package"


@dataclass(frozen=True)
class Info:
	name: str
	version: str
	description: str
	license: LicenseExpression

	def to_dict(self) -> dict[str, Any]:
		return {
			"name": self.name,
			"version": self.version,
			"description": self.description,
			"license": str(self.license),
		}


@dataclass(frozen=True)
class Dependencies:
	required: list[str] = field(default_factory=list)
	optional: list[str] = field(default_factory=list)
	build: list[str] = field(default_factory=list)

	def to_dict(self) -> dict[str, Any]:
		return {"required": list(self.required), "optional": list(self.optional), "build": list(self.build)}


@dataclass(frozen=True)
class Source:
	url: str
	checksum: str  # "<algorithm>:<hex>"; algorithm is checked by the verifier

	@property
	def filename(self) -> str:
		"""Last path segment of the URL (query and fragment stripped)."""
		tail = self.url.split("#", 1)[0].split("?", 1)[0].rstrip("/")
		return tail.rsplit("/", 1)[-1]

	def to_dict(self) -> dict[str, Any]:
		return {"url": self.url, "checksum": self.checksum}


@dataclass(frozen=True)
class CommandStep:
	kind: ClassVar[str] = "command"

	runner: Runner
	command: str

	def to_dict(self) -> dict[str, Any]:
		return {"runner": self.runner.name, "command": self.command}


@dataclass(frozen=True)
class MoveStep:
	kind: ClassVar[str] = "move"

	path: str

	def to_dict(self) -> dict[str, Any]:
		return {"path": self.path}


StepVariant = Union[CommandStep, MoveStep]


@dataclass(frozen=True)
class Step:
	name: str
	variant: StepVariant

	@property
	def kind(self) -> str:
		return self.variant.kind

	def to_dict(self) -> dict[str, Any]:
		out: dict[str, Any] = {"name": self.name}
		out.update(self.variant.to_dict())
		return out


@dataclass(frozen=True)
class Manifest:
	info: Info
	dependencies: Dependencies | None = None
	sources: list[Source] = field(default_factory=list)
	steps: list[Step] = field(default_factory=list)
	directories: dict[str, str] = field(default_factory=dict)

	def to_dict(self) -> dict[str, Any]:
		"""Wire-shaped dict (untagged steps); `None` dependencies are omitted."""
		out: dict[str, Any] = {"info": self.info.to_dict()}
		if self.dependencies is not None:
			out["dependencies"] = self.dependencies.to_dict()
		out["sources"] = [s.to_dict() for s in self.sources]
		out["steps"] = [s.to_dict() for s in self.steps]
		out["directories"] = dict(self.directories)
		return out


def default_pkgdir() -> Path:
	return Path(os.getcwd()) / DEFAULT_PKGDIR_NAME


def manifest_variables(
	version: str,
	*,
	package_dir: Path | str | None = None,
	extra: Mapping[str, str] | None = None,
) -> VariableTable:
	"""
	Variable table for one manifest.

	`version` and `pkgdir` are always present and cannot be overridden by
	`extra`.
	"""
	pkgdir = Path(package_dir) if package_dir is not None else default_pkgdir()
	table = VariableTable(dict(extra or {}))
	return table.with_values({VERSION_VAR: version, PKGDIR_VAR: str(pkgdir)})


def _require_table(obj: Any, *, what: str) -> dict[str, Any]:
	if not isinstance(obj, dict):
		raise FormatError(message=f"{what} must be a table", field=what)
	return obj


def _require_str(table: Mapping[str, Any], key: str, *, what: str, non_empty: bool = False) -> str:
	where = f"{what}.{key}"
	if key not in table:
		raise FormatError(message=f"missing required field '{where}'", field=where)
	value = table[key]
	if not isinstance(value, str):
		raise FormatError(message=f"'{where}' must be a string", field=where)
	if non_empty and not value:
		raise FormatError(message=f"'{where}' must be non-empty", field=where)
	return value


def _optional_list(obj: Any, *, what: str) -> list[Any]:
	if obj is None:
		return []
	if not isinstance(obj, list):
		raise FormatError(message=f"'{what}' must be an array", field=what)
	return obj


def _str_list(obj: Any, *, what: str) -> list[str]:
	items = _optional_list(obj, what=what)
	for i, item in enumerate(items):
		if not isinstance(item, str):
			raise FormatError(message=f"'{what}[{i}]' must be a string", field=f"{what}[{i}]")
	return list(items)


def _parse_info(raw: Any) -> Info:
	table = _require_table(raw, what="info")
	name = _require_str(table, "name", what="info", non_empty=True)
	version = _require_str(table, "version", what="info", non_empty=True)
	if find_placeholders(version):
		raise FormatError(message="'info.version' cannot reference variables", field="info.version")
	description = _require_str(table, "description", what="info")
	license_text = _require_str(table, "license", what="info")
	return Info(name=name, version=version, description=description, license=parse_license(license_text))


def _parse_dependencies(raw: Any) -> Dependencies | None:
	if raw is None:
		return None
	table = _require_table(raw, what="dependencies")
	return Dependencies(
		required=_str_list(table.get("required"), what="dependencies.required"),
		optional=_str_list(table.get("optional"), what="dependencies.optional"),
		build=_str_list(table.get("build"), what="dependencies.build"),
	)


def _parse_sources(raw: Any) -> list[tuple[str, str]]:
	out: list[tuple[str, str]] = []
	for i, item in enumerate(_optional_list(raw, what="sources")):
		what = f"sources[{i}]"
		table = _require_table(item, what=what)
		out.append((_require_str(table, "url", what=what), _require_str(table, "checksum", what=what)))
	return out


def _step_kind(table: Mapping[str, Any], *, what: str) -> str:
	explicit = table.get("type")
	has_command = "runner" in table or "command" in table
	has_move = "path" in table
	if explicit is not None:
		if explicit not in (CommandStep.kind, MoveStep.kind):
			raise FormatError(
				message=f"'{what}.type' must be '{CommandStep.kind}' or '{MoveStep.kind}', got {explicit!r}",
				field=f"{what}.type",
			)
		return explicit
	if has_command and has_move:
		raise FormatError(
			message=f"{what} mixes command fields ('runner'/'command') with 'path'",
			field=what,
		)
	if has_command:
		return CommandStep.kind
	if has_move:
		return MoveStep.kind
	raise FormatError(
		message=f"{what} must have either 'runner' and 'command' or 'path'",
		field=what,
	)


def _parse_step(raw: Any, *, index: int) -> tuple[str, str, dict[str, Any]]:
	what = f"steps[{index}]"
	table = _require_table(raw, what=what)
	name = _require_str(table, "name", what=what)
	kind = _step_kind(table, what=what)
	if kind == CommandStep.kind:
		runner_name = _require_str(table, "runner", what=what)
		try:
			runner = get_runner(runner_name)
		except KeyError as err:
			known = ", ".join(runner_names())
			raise FormatError(
				message=f"unknown runner {runner_name!r} (known: {known})",
				field=f"{what}.runner",
			) from err
		return name, kind, {"runner": runner, "command": _require_str(table, "command", what=what)}
	return name, kind, {"path": _require_str(table, "path", what=what)}


def _parse_directories(raw: Any) -> dict[str, str]:
	if raw is None:
		return {}
	table = _require_table(raw, what="directories")
	out: dict[str, str] = {}
	for key, value in table.items():
		if not isinstance(value, str):
			raise FormatError(message=f"'directories.{key}' must be a string", field=f"directories.{key}")
		out[key] = value
	return out


def parse_manifest(
	text: str,
	*,
	package_dir: Path | str | None = None,
	variables: Mapping[str, str] | None = None,
	substituter: Substituter | None = None,
) -> Manifest:
	"""
	Parse manifest text and resolve every `%{name}` placeholder.

	Raises:
	  FormatError: not TOML, or does not match the manifest schema.
	  LicenseError: `info.license` is not a valid SPDX expression.
	  VariableError: a name, description, url, command, path or directory
	    uses an undefined variable.

	`package_dir` is the value of `%{pkgdir}` (default: `<cwd>/package`).
	`variables` adds extra names to the table; it cannot replace `version` or
	`pkgdir`.
	"""
	try:
		data = tomllib.loads(text)
	except tomllib.TOMLDecodeError as err:
		raise FormatError(message=f"manifest is not valid TOML: {err}") from err

	if "info" not in data:
		raise FormatError(message="missing required table 'info'", field="info")
	info = _parse_info(data["info"])
	dependencies = _parse_dependencies(data.get("dependencies"))
	raw_sources = _parse_sources(data.get("sources"))
	raw_steps = [_parse_step(item, index=i) for i, item in enumerate(_optional_list(data.get("steps"), what="steps"))]
	raw_dirs = _parse_directories(data.get("directories"))

	table = manifest_variables(info.version, package_dir=package_dir, extra=variables)
	sub = substituter or default_substituter()
	info = replace(
		info,
		name=sub.substitute(info.name, table, field="info.name"),
		description=sub.substitute(info.description, table, field="info.description"),
	)

	sources = [
		Source(url=sub.substitute(url, table, field=f"sources[{i}].url"), checksum=checksum)
		for i, (url, checksum) in enumerate(raw_sources)
	]

	steps: list[Step] = []
	for i, (name, kind, fields) in enumerate(raw_steps):
		if kind == CommandStep.kind:
			command = sub.substitute(fields["command"], table, field=f"steps[{i}].command")
			variant: StepVariant = CommandStep(runner=fields["runner"], command=command)
		else:
			variant = MoveStep(path=sub.substitute(fields["path"], table, field=f"steps[{i}].path"))
		steps.append(Step(name=name, variant=variant))

	directories = {
		key: sub.substitute(value, table, field=f"directories.{key}") for key, value in raw_dirs.items()
	}

	logger.debug(
		"parsed manifest %s-%s: %d source(s), %d step(s)",
		info.name,
		info.version,
		len(sources),
		len(steps),
	)
	return Manifest(
		info=info,
		dependencies=dependencies,
		sources=sources,
		steps=steps,
		directories=directories,
	)


def load_manifest(
	path: Path,
	*,
	package_dir: Path | str | None = None,
	variables: Mapping[str, str] | None = None,
) -> Manifest:
	"""Read `path` (UTF-8) and parse it; read failures become `PeachIOError`."""
	try:
		text = path.read_text(encoding="utf-8")
	except OSError as err:
		raise io_error(err, path=path, operation="read") from err
	except UnicodeDecodeError as err:
		raise FormatError(message=f"manifest is not valid UTF-8: {err}", path=str(path)) from err
	try:
		return parse_manifest(text, package_dir=package_dir, variables=variables)
	except (FormatError, LicenseError, VariableError) as err:
		if err.path is not None:
			raise
		raise type(err)(
			message=err.message,
			path=str(path),
			field=err.field,
			variables=err.variables,
		) from err
