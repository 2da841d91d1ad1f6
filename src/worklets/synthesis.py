"""Standalone source synthesis for worklets.

The function is regenerated on its own, lowered into the portable subset and
printed again. The emitted text is what the secondary interpreter evaluates,
with captured bindings supplied as its global variables.
"""

from __future__ import annotations

import ast
import copy
from dataclasses import dataclass

from worklets.errors import SynthesisError, ensure
from worklets.function import FunctionNode, WorkletFunction
from worklets.lowering import lower
from worklets.sourcemap import ColumnConverter, SourceMapBuilder, paired_positions
from worklets.unit import CompilationUnit


@dataclass(frozen=True, slots=True)
class SynthesizedSource:
	code: str
	source_map: str | None = None


@dataclass(frozen=True, slots=True)
class Synthesis:
	source: SynthesizedSource
	# Lowered tree parsed from the candidate text; positions are candidate-relative
	tree: ast.Module


def _standalone_node(fun: WorkletFunction) -> FunctionNode:
	node = copy.deepcopy(fun.node)
	if not isinstance(node, ast.Lambda):
		# Decorators run in the originating interpreter only
		node.decorator_list = []
	return node


def _wrap(text: str, fun: WorkletFunction) -> str:
	# The newline keeps a trailing comment from swallowing the closing paren
	if fun.form == "lambda":
		return f"({text}\n)"
	return f"{text}\n"


def _function_of(module: ast.Module, fun: WorkletFunction) -> FunctionNode:
	ensure(len(module.body) == 1, "synthesized source must hold a single function")
	stmt = module.body[0]
	if fun.form == "lambda":
		ensure(
			isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Lambda),
			"synthesized lambda is not a lambda expression",
		)
		return stmt.value  # pyright: ignore[reportAttributeAccessIssue, reportReturnType]
	ensure(
		isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)),
		"synthesized source is not a function definition",
	)
	return stmt  # pyright: ignore[reportReturnType]


def _check_class_free(node: FunctionNode, fun: WorkletFunction, filename: str) -> None:
	"""Reject code that needs the implicit `__class__` cell of its class body.

	Classes defined inside the worklet carry their own cell and are skipped.
	"""
	pending: list[ast.AST] = [node]
	while pending:
		child = pending.pop()
		pending.extend(
			grandchild
			for grandchild in ast.iter_child_nodes(child)
			if not isinstance(grandchild, ast.ClassDef)
		)
		if isinstance(child, ast.Name) and child.id == "__class__":
			problem = "__class__"
		elif (
			isinstance(child, ast.Call)
			and isinstance(child.func, ast.Name)
			and child.func.id == "super"
			and not child.args
		):
			problem = "zero-argument super()"
		else:
			continue
		raise SynthesisError(
			f"{problem} is unavailable outside the defining class",
			filename=filename,
			worklet=fun.describe(),
		)


def _parse(code: str, filename: str, fun: WorkletFunction, stage: str) -> ast.Module:
	try:
		return ast.parse(code, filename=filename)
	except SyntaxError as exc:
		raise SynthesisError(
			f"{stage} source does not parse: {exc.msg}",
			filename=filename,
			worklet=fun.describe(),
		) from exc


def synthesize(fun: WorkletFunction, unit: CompilationUnit) -> Synthesis:
	"""Regenerate, lower and re-print a worklet's source.

	Expects the worklet directive to be stripped already. Any parse failure
	along the way is fatal: there is no fallback to un-lowered text.
	"""
	filename = unit.require_filename()
	node = _standalone_node(fun)
	_check_class_free(node, fun, filename)

	candidate = _wrap(ast.unparse(node), fun)
	candidate_tree = _parse(candidate, filename, fun, "regenerated")
	# candidate position -> original position
	origins = dict(paired_positions(node, _function_of(candidate_tree, fun)))

	lowered = lower(candidate_tree)
	code = _wrap(ast.unparse(_function_of(lowered, fun)), fun)
	final_tree = _parse(code, filename, fun, "lowered")

	builder = SourceMapBuilder(source=filename)
	generated_column = ColumnConverter(code)
	original_column = ColumnConverter(unit.source)
	for generated, candidate_position in paired_positions(lowered, final_tree):
		original = origins.get(candidate_position)
		if original is None:
			continue
		builder.add(
			(generated[0], generated_column(*generated)),
			(original[0], original_column(*original)),
		)

	return Synthesis(SynthesizedSource(code, builder.to_json()), lowered)
