# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
SPDX license expressions.

The lark grammar checks the expression syntax (identifiers, `WITH`, `AND`,
`OR`, parentheses, `+`, `LicenseRef-` / `DocumentRef-...:LicenseRef-`
references). Every license and exception identifier that is not a reference
must then be on the SPDX list and spelled as listed; the list comes from
`packaging.licenses`.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from lark import Lark, Token, Transformer
from lark.exceptions import UnexpectedInput, VisitError
from packaging.licenses import InvalidLicenseExpression, canonicalize_license_expression

from peach.errors import LicenseError

_GRAMMAR_PATH = Path(__file__).with_name("spdx.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text(encoding="utf-8")

_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="lalr",
	lexer="basic",
	start="expression",
	maybe_placeholders=False,
)


@dataclass(frozen=True)
class LicenseReq:
	license_id: str
	or_later: bool = False
	exception: str | None = None

	def __str__(self) -> str:
		text = self.license_id + ("+" if self.or_later else "")
		if self.exception is not None:
			text += f" WITH {self.exception}"
		return text


@dataclass(frozen=True)
class AllOf:
	terms: tuple["LicenseNode", ...]


@dataclass(frozen=True)
class AnyOf:
	terms: tuple["LicenseNode", ...]


LicenseNode = Union[LicenseReq, AllOf, AnyOf]


def _check_idstring(tok: Token) -> str:
	text = str(tok)
	if ":" in text:
		doc, _, ref = text.partition(":")
		if not doc.startswith("DocumentRef-") or not ref.startswith("LicenseRef-"):
			raise ValueError(f"invalid license reference '{text}'")
	return text


class _ToNodes(Transformer):
	def license(self, children: list[Token]) -> LicenseReq:
		text = _check_idstring(children[0])
		or_later = text.endswith("+")
		if or_later:
			text = text[:-1]
		if "LicenseRef-" in text and or_later:
			raise ValueError(f"'+' is not allowed on license reference '{text}'")
		return LicenseReq(license_id=text, or_later=or_later)

	def with_exception(self, children: list[object]) -> LicenseReq:
		req, exc_tok = children
		if not isinstance(req, LicenseReq) or req.exception is not None:
			raise ValueError("WITH must follow a single license identifier")
		exc = _check_idstring(exc_tok)
		if exc.endswith("+") or ":" in exc:
			raise ValueError(f"invalid license exception '{exc}'")
		return LicenseReq(license_id=req.license_id, or_later=req.or_later, exception=exc)

	def all_of(self, children: list[LicenseNode]) -> AllOf:
		return AllOf(terms=_flatten(children, AllOf))

	def any_of(self, children: list[LicenseNode]) -> AnyOf:
		return AnyOf(terms=_flatten(children, AnyOf))


def _flatten(children: list[LicenseNode], kind: type) -> tuple[LicenseNode, ...]:
	out: list[LicenseNode] = []
	for child in children:
		if isinstance(child, kind):
			out.extend(child.terms)
		else:
			out.append(child)
	return tuple(out)


@dataclass(frozen=True)
class LicenseExpression:
	"""A parsed SPDX expression; `str()` gives back the original text."""

	text: str
	root: LicenseNode

	def __str__(self) -> str:
		return self.text

	def requirements(self) -> list[LicenseReq]:
		"""Every license requirement in the expression, left to right."""
		out: list[LicenseReq] = []
		stack: list[LicenseNode] = [self.root]
		while stack:
			node = stack.pop()
			if isinstance(node, LicenseReq):
				out.append(node)
			else:
				stack.extend(reversed(node.terms))
		return out


def parse_license(text: str) -> LicenseExpression:
	if not isinstance(text, str) or not text.strip():
		raise LicenseError(message="license expression is empty", field="info.license")
	try:
		tree = _PARSER.parse(text)
		root = _ToNodes().transform(tree)
	except UnexpectedInput as err:
		raise LicenseError(
			message=f"invalid SPDX license expression {text!r} (column {err.column})",
			field="info.license",
		) from err
	except VisitError as err:
		raise LicenseError(
			message=f"invalid SPDX license expression {text!r}: {err.orig_exc}",
			field="info.license",
		) from err
	expr = LicenseExpression(text=text.strip(), root=root)
	for req in expr.requirements():
		_check_listed(req)
	return expr


# Stand-in for user-defined references, which are never on the SPDX list.
_REFERENCE_STANDIN = "LicenseRef-peach"


def _is_reference(license_id: str) -> bool:
	return license_id.startswith("LicenseRef-") or ":" in license_id


def _check_listed(req: LicenseReq) -> None:
	license_id = _REFERENCE_STANDIN if _is_reference(req.license_id) else req.license_id
	term = str(LicenseReq(license_id=license_id, or_later=req.or_later, exception=req.exception))
	try:
		canonical = canonicalize_license_expression(term)
	except InvalidLicenseExpression as err:
		raise LicenseError(message=f"{err} in {str(req)!r}", field="info.license") from err
	if canonical != term:
		raise LicenseError(
			message=f"license identifier {str(req)!r} must be spelled {canonical!r}",
			field="info.license",
		)
