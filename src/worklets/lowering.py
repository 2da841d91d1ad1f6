"""Syntax lowering applied to worklet source before it leaves this process.

The receiving interpreter may be older than the one running the build, or may
not support annotations evaluation at all, so worklet source is rewritten into
a portable subset. The pipeline is fixed and ordered; each step is an
`ast.NodeTransformer` that keeps source locations on the nodes it produces.
"""

from __future__ import annotations

import ast
from typing import override

from worklets.errors import SynthesisError

# Statement-list fields that must never end up empty after a rewrite
_BLOCK_FIELDS = ("body", "orelse", "finalbody")

_CONVERSIONS = frozenset(map(ord, "sra"))


class _LoweringTransformer(ast.NodeTransformer):
	@override
	def generic_visit(self, node: ast.AST) -> ast.AST:
		non_empty = [name for name in _BLOCK_FIELDS if getattr(node, name, None)]
		node = super().generic_visit(node)
		for name in non_empty:
			if not getattr(node, name):
				setattr(node, name, [ast.copy_location(ast.Pass(), node)])
		return node


class StripTypeAnnotations(_LoweringTransformer):
	"""Drop annotations and type parameters.

	`x: T = value` keeps its assignment. A bare `x: T` becomes an unreachable
	`del x`, which keeps `x` local without evaluating anything.
	"""

	def _strip_function(
		self, node: ast.FunctionDef | ast.AsyncFunctionDef
	) -> ast.AST:
		node.returns = None
		if hasattr(node, "type_params"):
			node.type_params = []
		return self.generic_visit(node)

	def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.AST:
		return self._strip_function(node)

	def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:
		return self._strip_function(node)

	def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
		if hasattr(node, "type_params"):
			node.type_params = []
		return self.generic_visit(node)

	def visit_arg(self, node: ast.arg) -> ast.AST:
		node.annotation = None
		node.type_comment = None
		return node

	def visit_AnnAssign(self, node: ast.AnnAssign) -> ast.AST | None:
		if node.value is None:
			if not (node.simple and isinstance(node.target, ast.Name)):
				return None
			# `x: T` still makes `x` local to the enclosing scope
			target = ast.Name(id=node.target.id, ctx=ast.Del())
			unreachable = ast.If(
				test=ast.Constant(False),
				body=[ast.copy_location(ast.Delete(targets=[target]), node)],
				orelse=[],
			)
			return ast.copy_location(unreachable, node)
		assign = ast.Assign(targets=[node.target], value=node.value)
		return self.generic_visit(ast.copy_location(assign, node))


class LowerPositionalOnlyParameters(_LoweringTransformer):
	"""Turn `/`-separated parameters into ordinary positional ones.

	Skipped when the function takes `**kwargs`: there a keyword that shares a
	positional-only name must keep landing in kwargs.
	"""

	def _lower(self, args: ast.arguments) -> None:
		if args.posonlyargs and args.kwarg is None:
			args.args = [*args.posonlyargs, *args.args]
			args.posonlyargs = []

	def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.AST:
		self._lower(node.args)
		return self.generic_visit(node)

	def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:
		self._lower(node.args)
		return self.generic_visit(node)

	def visit_Lambda(self, node: ast.Lambda) -> ast.AST:
		self._lower(node.args)
		return self.generic_visit(node)


class LowerFormattedStrings(_LoweringTransformer):
	"""Rewrite f-strings into `str.format` calls on a constant template.

	`f"a{x!r:>4}b"` becomes `'a{!r:>4}b'.format(x)` and `f"{x:{w}}"` becomes
	`'{:{}}'.format(x, w)`. Arguments keep the f-string's evaluation order, and
	the method lookup on the template cannot hit a binding of the worklet.
	"""

	def _field(self, node: ast.FormattedValue, args: list[ast.expr], nested: bool) -> str:
		args.append(self.visit(node.value))  # pyright: ignore[reportArgumentType]
		field = "{"
		if node.conversion != -1:
			if node.conversion not in _CONVERSIONS:
				raise SynthesisError(
					f"unsupported f-string conversion {chr(node.conversion)!r}"
				)
			field += f"!{chr(node.conversion)}"
		if node.format_spec is not None:
			if nested or not isinstance(node.format_spec, ast.JoinedStr):
				raise SynthesisError("f-string format specification is nested too deeply")
			field += ":" + self._template(node.format_spec, args, nested=True)
		return field + "}"

	def _template(self, node: ast.JoinedStr, args: list[ast.expr], nested: bool = False) -> str:
		parts: list[str] = []
		for value in node.values:
			if isinstance(value, ast.FormattedValue):
				parts.append(self._field(value, args, nested))
			elif isinstance(value, ast.Constant) and isinstance(value.value, str):
				parts.append(value.value.replace("{", "{{").replace("}", "}}"))
			else:
				raise SynthesisError(f"unexpected f-string part {type(value).__name__}")
		return "".join(parts)

	def visit_JoinedStr(self, node: ast.JoinedStr) -> ast.AST:
		args: list[ast.expr] = []
		template = self._template(node, args)
		if not args:
			text = "".join(value.value for value in node.values)  # pyright: ignore[reportAttributeAccessIssue]
			return ast.copy_location(ast.Constant(text), node)
		method = ast.Attribute(value=ast.Constant(template), attr="format", ctx=ast.Load())
		call = ast.Call(func=method, args=args, keywords=[])
		return ast.copy_location(call, node)


LOWERING_PIPELINE: tuple[type[ast.NodeTransformer], ...] = (
	StripTypeAnnotations,
	LowerPositionalOnlyParameters,
	LowerFormattedStrings,
)


def lower(tree: ast.Module) -> ast.Module:
	"""Run every lowering step, in order, over `tree`."""
	for step in LOWERING_PIPELINE:
		try:
			tree = step().visit(tree)
		except (TypeError, ValueError) as exc:
			raise SynthesisError(f"{step.__name__} failed: {exc}") from exc
	return ast.fix_missing_locations(tree)
