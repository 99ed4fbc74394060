# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Variable substitution for manifest strings.

A placeholder is `%{` + one or more characters other than `}` + `}`. The name
between the braces is used verbatim (no trimming, case-sensitive) as a key
into a variable table. Substitution is a single pass: replacement text is
never re-scanned, so values may themselves contain `%{...}` literally.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Iterator

from peach.errors import VariableError

PLACEHOLDER_PATTERN = r"%\{([^}]+)\}"


class VariableTable(Mapping):
	"""Immutable name -> value table used for one substitution context."""

	def __init__(self, values: Mapping[str, str] | None = None) -> None:
		items = dict(values or {})
		for name, value in items.items():
			if not isinstance(name, str) or not name:
				raise ValueError("variable names must be non-empty strings")
			if not isinstance(value, str):
				raise ValueError(f"variable '{name}' must have a string value")
		self._values = items

	def __getitem__(self, name: str) -> str:
		return self._values[name]

	def __iter__(self) -> Iterator[str]:
		return iter(self._values)

	def __len__(self) -> int:
		return len(self._values)

	def __repr__(self) -> str:
		return f"VariableTable({self._values!r})"

	def with_values(self, extra: Mapping[str, str]) -> "VariableTable":
		"""Return a copy with `extra` merged in (entries in `extra` win)."""
		merged = dict(self._values)
		merged.update(extra)
		return VariableTable(merged)


class Substituter:
	"""
	Owns the compiled placeholder pattern.

	Build one and pass it around, or use `default_substituter()` for the shared
	instance.
	"""

	def __init__(self, pattern: str = PLACEHOLDER_PATTERN) -> None:
		self._regex = re.compile(pattern)

	def find_placeholders(self, haystack: str) -> list[str]:
		"""Return placeholder names in order of appearance (duplicates kept)."""
		return [m.group(1) for m in self._regex.finditer(haystack)]

	def substitute(self, haystack: str, variables: Mapping[str, str], *, field: str | None = None) -> str:
		"""
		Replace every `%{name}` in `haystack` with `variables[name]`.

		Raises `VariableError` if any referenced name is missing; in that case no
		partially substituted string is produced. `field` is only used to give
		the error a location.
		"""
		missing = sorted({name for name in self.find_placeholders(haystack) if name not in variables})
		if missing:
			names = ", ".join(f"'{n}'" for n in missing)
			noun = "variable" if len(missing) == 1 else "variables"
			raise VariableError(
				message=f"undefined {noun} {names} in {haystack!r}",
				field=field,
				variables=missing,
			)
		return self._regex.sub(lambda m: variables[m.group(1)], haystack)


_DEFAULT: Substituter | None = None


def default_substituter() -> Substituter:
	global _DEFAULT
	if _DEFAULT is None:
		_DEFAULT = Substituter()
	return _DEFAULT


def substitute(haystack: str, variables: Mapping[str, str], *, field: str | None = None) -> str:
	return default_substituter().substitute(haystack, variables, field=field)


def find_placeholders(haystack: str) -> list[str]:
	return default_substituter().find_placeholders(haystack)
