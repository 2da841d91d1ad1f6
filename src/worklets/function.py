"""Syntax-level model of a function marked for worklet packaging."""

from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import Literal, TypeAlias

from worklets.errors import ensure

FunctionForm = Literal["def", "method", "lambda"]
FunctionNode: TypeAlias = ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda


@dataclass(frozen=True, slots=True)
class SourceLocation:
	filename: str | None
	line: int
	column: int
	end_line: int | None = None
	end_column: int | None = None

	@staticmethod
	def of(node: ast.AST, filename: str | None) -> "SourceLocation":
		return SourceLocation(
			filename=filename,
			line=getattr(node, "lineno"),
			column=getattr(node, "col_offset"),
			end_line=getattr(node, "end_lineno", None),
			end_column=getattr(node, "end_col_offset", None),
		)

	def __str__(self) -> str:
		return f"{self.filename or '<unknown>'}:{self.line}:{self.column}"


@dataclass(slots=True)
class WorkletFunction:
	"""A function definition, method or lambda to be packaged as a worklet.

	The node belongs to the caller's tree. The transform only mutates it to
	strip the worklet directive.
	"""

	node: FunctionNode
	form: FunctionForm

	def __post_init__(self) -> None:
		if self.form == "lambda":
			ensure(isinstance(self.node, ast.Lambda), "lambda form requires a Lambda node")
		else:
			ensure(
				isinstance(self.node, (ast.FunctionDef, ast.AsyncFunctionDef)),
				f"{self.form} form requires a function definition",
			)

	@staticmethod
	def from_node(node: FunctionNode, *, in_class_body: bool = False) -> "WorkletFunction":
		if isinstance(node, ast.Lambda):
			return WorkletFunction(node, "lambda")
		return WorkletFunction(node, "method" if in_class_body else "def")

	@property
	def own_name(self) -> str | None:
		if isinstance(self.node, ast.Lambda):
			return None
		return self.node.name

	@property
	def is_async(self) -> bool:
		return isinstance(self.node, ast.AsyncFunctionDef)

	@property
	def location(self) -> str:
		return f"{self.node.lineno}:{self.node.col_offset}"

	def describe(self) -> str:
		if self.own_name:
			return f"{self.form} '{self.own_name}' at {self.location}"
		return f"{self.form} at {self.location}"
