"""Module-level worklet transform.

Finds worklet candidates in a parsed module and replaces each of them with a
call to its generated factory:

- `def` statements whose prologue holds the `"worklet"` directive,
- `def` statements decorated with `@worklet` (or `@worklets.worklet`),
- lambdas wrapped in a marker call, `worklet(lambda x: ...)`.
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, override

from worklets.directive import has_worklet_directive
from worklets.errors import PreconditionError, WorkletError
from worklets.factory import WorkletFactory, make_worklet_factory
from worklets.function import WorkletFunction
from worklets.options import WorkletOptions
from worklets.unit import CompilationUnit

logger = logging.getLogger(__name__)

MARKER_NAME = "worklet"
MARKER_MODULE = "worklets"

BlockOwner = Literal["module", "function", "class"]


def is_marker(node: ast.expr) -> bool:
	if isinstance(node, ast.Name):
		return node.id == MARKER_NAME
	return (
		isinstance(node, ast.Attribute)
		and node.attr == MARKER_NAME
		and isinstance(node.value, ast.Name)
		and node.value.id == MARKER_MODULE
	)


def _is_marker_call(node: ast.Call) -> bool:
	return (
		is_marker(node.func)
		and len(node.args) == 1
		and not node.keywords
		and isinstance(node.args[0], ast.Lambda)
	)


def _is_statement_list(value: list[Any]) -> bool:
	return bool(value) and all(isinstance(item, ast.stmt) for item in value)


class WorkletTransformer(ast.NodeTransformer):
	"""Replace worklet candidates in a module with their factories.

	Candidates are processed before their children, so a worklet nested in
	another one is packaged from the outer worklet's main-interpreter copy.
	"""

	unit: CompilationUnit
	worklets: list[WorkletFactory]
	_owners: list[BlockOwner]
	_preambles: list[list[ast.stmt]]
	_epilogues: list[tuple[BlockOwner, list[ast.stmt]]]
	_hoisted: list[ast.stmt]
	_expression_depth: int

	def __init__(self, unit: CompilationUnit) -> None:
		self.unit = unit
		self.worklets = []
		self._owners = ["module"]
		self._preambles = []
		self._epilogues = []
		self._hoisted = []
		self._expression_depth = 0

	# --- Blocks -------------------------------------------------------------

	def visit_Module(self, node: ast.Module) -> ast.Module:
		body: list[ast.stmt] = []
		for stmt in node.body:
			self._hoisted = []
			transformed = self._visit_block([stmt])
			# Init data goes right before the top-level statement that uses it
			body.extend(self._hoisted)
			body.extend(transformed)
		node.body = body
		return node

	def _visit_block(self, statements: list[ast.stmt]) -> list[ast.stmt]:
		result: list[ast.stmt] = []
		for stmt in statements:
			self._preambles.append([])
			self._epilogues.append((self._owners[-1], []))
			new = self.visit(stmt)
			result.extend(self._preambles.pop())
			_, epilogue = self._epilogues.pop()
			if isinstance(new, ast.AST):
				result.append(new)  # pyright: ignore[reportArgumentType]
			elif new is not None:
				result.extend(new)
			result.extend(epilogue)
		return result

	def _visit_list(self, values: list[Any]) -> list[Any]:
		result: list[Any] = []
		for value in values:
			if isinstance(value, ast.AST):
				value = self.visit(value)
				if value is None:
					continue
				if not isinstance(value, ast.AST):
					result.extend(value)
					continue
			result.append(value)
		return result

	@override
	def generic_visit(self, node: ast.AST) -> ast.AST:
		for field, value in ast.iter_fields(node):
			if isinstance(value, list):
				if _is_statement_list(value):
					setattr(node, field, self._visit_block(value))
				else:
					setattr(node, field, self._visit_list(value))
			elif isinstance(value, ast.AST):
				new = self.visit(value)
				if new is None:
					delattr(node, field)
				else:
					setattr(node, field, new)
		return node

	def _discard_factory(self, factory: WorkletFactory) -> None:
		# Class bodies keep every name they bind as an attribute
		owner, epilogue = self._epilogues[-1]
		if owner == "class":
			epilogue.append(
				ast.Delete(targets=[ast.Name(id=factory.factory.name, ctx=ast.Del())])
			)

	def _visit_owned(self, node: ast.AST, owner: BlockOwner) -> ast.AST:
		self._owners.append(owner)
		try:
			return self.generic_visit(node)
		finally:
			self._owners.pop()

	# --- Candidates ---------------------------------------------------------

	def _package(self, fun: WorkletFunction) -> WorkletFactory:
		try:
			factory = make_worklet_factory(fun, self.unit)
		except WorkletError as exc:
			exc.filename = exc.filename or self.unit.filename
			exc.worklet = exc.worklet or fun.describe()
			raise
		self.worklets.append(factory)
		statement = factory.init_data_statement()
		if statement is not None:
			self._hoisted.append(statement)
		return factory

	def _visit_definition(
		self, node: ast.FunctionDef | ast.AsyncFunctionDef
	) -> ast.AST | list[ast.stmt]:
		decorators = [d for d in node.decorator_list if not is_marker(d)]
		marked = len(decorators) != len(node.decorator_list)
		if not marked and not has_worklet_directive(node):
			return self._visit_owned(node, "function")

		in_class_body = self._owners[-1] == "class"
		node.decorator_list = decorators
		fun = WorkletFunction.from_node(node, in_class_body=in_class_body)
		factory = self._package(fun)

		value: ast.expr = factory.call()
		for decorator in reversed(decorators):
			value = ast.Call(func=decorator, args=[value], keywords=[])
		assign = ast.Assign(targets=[ast.Name(id=node.name, ctx=ast.Store())], value=value)
		# Worklets nested in this one are packaged from the factory's copy
		factory_def = self.visit(factory.factory)
		self._discard_factory(factory)
		return [factory_def, ast.copy_location(assign, node)]

	def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.AST | list[ast.stmt]:
		return self._visit_definition(node)

	def visit_AsyncFunctionDef(
		self, node: ast.AsyncFunctionDef
	) -> ast.AST | list[ast.stmt]:
		return self._visit_definition(node)

	def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
		return self._visit_owned(node, "class")

	def visit_Call(self, node: ast.Call) -> ast.AST:
		if not _is_marker_call(node):
			return self.generic_visit(node)
		if self._expression_depth:
			raise PreconditionError(
				"worklet lambdas cannot be declared inside another lambda or a comprehension",
				filename=self.unit.filename,
				worklet=f"lambda at {node.lineno}:{node.col_offset}",
			)
		lambda_node: ast.Lambda = node.args[0]  # pyright: ignore[reportAssignmentType]
		factory = self._package(WorkletFunction.from_node(lambda_node))
		self._preambles[-1].append(self.visit(factory.factory))
		self._discard_factory(factory)
		return ast.copy_location(factory.call(), node)

	def _visit_expression_scope(self, node: ast.AST) -> ast.AST:
		self._expression_depth += 1
		try:
			return self.generic_visit(node)
		finally:
			self._expression_depth -= 1

	def visit_Lambda(self, node: ast.Lambda) -> ast.AST:
		return self._visit_expression_scope(node)

	def visit_ListComp(self, node: ast.ListComp) -> ast.AST:
		return self._visit_expression_scope(node)

	def visit_SetComp(self, node: ast.SetComp) -> ast.AST:
		return self._visit_expression_scope(node)

	def visit_DictComp(self, node: ast.DictComp) -> ast.AST:
		return self._visit_expression_scope(node)

	def visit_GeneratorExp(self, node: ast.GeneratorExp) -> ast.AST:
		return self._visit_expression_scope(node)


@dataclass(frozen=True, slots=True)
class TransformResult:
	code: str
	worklets: list[WorkletFactory]


def transform_module(tree: ast.Module, unit: CompilationUnit) -> list[WorkletFactory]:
	"""Transform `tree` in place; returns the worklets that were packaged."""
	transformer = WorkletTransformer(unit)
	transformer.visit(tree)
	ast.fix_missing_locations(tree)
	logger.debug(
		"Transformed %s: %d worklet(s)", unit.filename, len(transformer.worklets)
	)
	return transformer.worklets


def transform_source(
	source: str, filename: str, options: WorkletOptions | None = None
) -> TransformResult:
	"""Transform module source text. Untouched modules are returned verbatim."""
	tree = ast.parse(source, filename=filename)
	unit = CompilationUnit.for_module(tree, filename, source=source, options=options)
	worklets = transform_module(tree, unit)
	if not worklets:
		return TransformResult(source, [])
	return TransformResult(ast.unparse(tree) + "\n", worklets)


def transform_file(
	path: str | Path, options: WorkletOptions | None = None
) -> TransformResult:
	path = Path(path).resolve()
	return transform_source(path.read_text(encoding="utf-8"), str(path), options)
