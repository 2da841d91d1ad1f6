"""Capture analysis: which outer variables does a worklet depend on?

Analysis runs on the lowered tree, since that is the code that will execute
remotely. Reported locations are then taken from the original function,
because positions in the lowered tree are relative to the synthesized text.
"""

from __future__ import annotations

import ast
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Literal

from worklets.function import FunctionNode, SourceLocation, WorkletFunction
from worklets.globals import is_global

ScopeKind = Literal["module", "function", "lambda", "class", "comprehension"]


@dataclass(eq=False, slots=True)
class Scope:
	kind: ScopeKind
	parent: Scope | None
	declared: set[str] = field(default_factory=set)
	globals: set[str] = field(default_factory=set)
	nonlocals: set[str] = field(default_factory=set)

	def declare(self, name: str) -> None:
		if name not in self.globals and name not in self.nonlocals:
			self.declared.add(name)

	def declares(self, name: str) -> bool:
		return name in self.declared


@dataclass(slots=True)
class ScopeTree:
	"""Parent-linked lexical scopes of a module, plus every name it reads."""

	root: Scope
	references: list[tuple[ast.Name, Scope]]

	@staticmethod
	def build(tree: ast.AST) -> "ScopeTree":
		builder = _ScopeBuilder()
		builder.visit(tree)
		return ScopeTree(builder.root, builder.references)

	def is_local(self, name: str, scope: Scope) -> bool:
		"""Whether `name`, read in `scope`, is bound below the module scope.

		Class scopes only count for references made directly in the class
		body; nested functions and comprehensions cannot see them.
		"""
		current = scope
		while current is not None and current.kind != "module":
			if name in current.globals:
				return False
			if current.declares(name) and (current is scope or current.kind != "class"):
				return True
			current = current.parent
		return False


class _ScopeBuilder(ast.NodeVisitor):
	root: Scope
	scope: Scope
	references: list[tuple[ast.Name, Scope]]

	def __init__(self) -> None:
		self.root = Scope("module", None)
		self.scope = self.root
		self.references = []

	def _visit_all(self, nodes: Iterable[ast.AST | None]) -> None:
		for node in nodes:
			if node is not None:
				self.visit(node)

	def _declare_arguments(self, args: ast.arguments) -> None:
		for arg in (*args.posonlyargs, *args.args, *args.kwonlyargs):
			self.scope.declare(arg.arg)
		if args.vararg is not None:
			self.scope.declare(args.vararg.arg)
		if args.kwarg is not None:
			self.scope.declare(args.kwarg.arg)

	def _visit_argument_defaults(self, args: ast.arguments) -> None:
		self._visit_all(args.defaults)
		self._visit_all(args.kw_defaults)
		for arg in (*args.posonlyargs, *args.args, *args.kwonlyargs, args.vararg, args.kwarg):
			if arg is not None and arg.annotation is not None:
				self.visit(arg.annotation)

	def _push(self, kind: ScopeKind) -> Scope:
		parent = self.scope
		self.scope = Scope(kind, parent)
		return parent

	def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
		self._visit_all(node.decorator_list)
		self._visit_argument_defaults(node.args)
		if node.returns is not None:
			self.visit(node.returns)
		self.scope.declare(node.name)
		parent = self._push("function")
		self._declare_arguments(node.args)
		self._visit_all(node.body)
		self.scope = parent

	def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
		self._visit_function(node)

	def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
		self._visit_function(node)

	def visit_Lambda(self, node: ast.Lambda) -> None:
		self._visit_argument_defaults(node.args)
		parent = self._push("lambda")
		self._declare_arguments(node.args)
		self.visit(node.body)
		self.scope = parent

	def visit_ClassDef(self, node: ast.ClassDef) -> None:
		self._visit_all(node.decorator_list)
		self._visit_all(node.bases)
		self._visit_all(node.keywords)
		self.scope.declare(node.name)
		parent = self._push("class")
		self._visit_all(node.body)
		self.scope = parent

	def _visit_comprehension(
		self, elements: list[ast.expr], generators: list[ast.comprehension]
	) -> None:
		parent = self._push("comprehension")
		self._visit_all(elements)
		for index, generator in enumerate(generators):
			self.visit(generator.target)
			if index == 0:
				# The outermost iterable is evaluated in the enclosing scope
				comprehension_scope, self.scope = self.scope, parent
				self.visit(generator.iter)
				self.scope = comprehension_scope
			else:
				self.visit(generator.iter)
			self._visit_all(generator.ifs)
		self.scope = parent

	def visit_ListComp(self, node: ast.ListComp) -> None:
		self._visit_comprehension([node.elt], node.generators)

	def visit_SetComp(self, node: ast.SetComp) -> None:
		self._visit_comprehension([node.elt], node.generators)

	def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
		self._visit_comprehension([node.elt], node.generators)

	def visit_DictComp(self, node: ast.DictComp) -> None:
		self._visit_comprehension([node.key, node.value], node.generators)

	def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
		self.visit(node.value)
		# Walrus targets bind in the nearest non-comprehension scope
		target_scope = self.scope
		while target_scope.kind == "comprehension" and target_scope.parent is not None:
			target_scope = target_scope.parent
		target_scope.declare(node.target.id)

	def visit_Name(self, node: ast.Name) -> None:
		if isinstance(node.ctx, ast.Load):
			self.references.append((node, self.scope))
		else:
			self.scope.declare(node.id)

	def visit_Global(self, node: ast.Global) -> None:
		self.scope.globals.update(node.names)

	def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
		self.scope.nonlocals.update(node.names)

	def visit_Import(self, node: ast.Import) -> None:
		for alias in node.names:
			self.scope.declare(alias.asname or alias.name.split(".")[0])

	def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
		for alias in node.names:
			if alias.name != "*":
				self.scope.declare(alias.asname or alias.name)

	def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
		if node.name:
			self.scope.declare(node.name)
		self.generic_visit(node)

	def visit_MatchAs(self, node: ast.MatchAs) -> None:
		if node.name:
			self.scope.declare(node.name)
		self.generic_visit(node)

	def visit_MatchStar(self, node: ast.MatchStar) -> None:
		if node.name:
			self.scope.declare(node.name)

	def visit_MatchMapping(self, node: ast.MatchMapping) -> None:
		if node.rest:
			self.scope.declare(node.rest)
		self.generic_visit(node)


@dataclass(slots=True)
class CapturedBinding:
	name: str
	# Representative reference in the lowered tree
	node: ast.Name
	location: SourceLocation | None = None


class CaptureSet:
	"""Captured bindings, unique by name, in first-discovery order."""

	__slots__: tuple[str, ...] = ("_bindings", "_by_name")
	_bindings: list[CapturedBinding]
	_by_name: dict[str, CapturedBinding]

	def __init__(self, bindings: Iterable[CapturedBinding] = ()) -> None:
		self._bindings = []
		self._by_name = {}
		for binding in bindings:
			self.add(binding)

	def add(self, binding: CapturedBinding) -> bool:
		"""Register `binding`; returns False if its name is already captured."""
		if binding.name in self._by_name:
			return False
		self._bindings.append(binding)
		self._by_name[binding.name] = binding
		return True

	def get(self, name: str) -> CapturedBinding | None:
		return self._by_name.get(name)

	@property
	def names(self) -> list[str]:
		return [binding.name for binding in self._bindings]

	def __contains__(self, name: object) -> bool:
		return name in self._by_name

	def __iter__(self) -> Iterator[CapturedBinding]:
		return iter(self._bindings)

	def __len__(self) -> int:
		return len(self._bindings)

	def __repr__(self) -> str:
		return f"CaptureSet({self.names!r})"


def find_captured_bindings(
	tree: ast.AST,
	fun: WorkletFunction,
	extra_globals: frozenset[str] = frozenset(),
) -> CaptureSet:
	"""First pass: collect free names of the (lowered) worklet tree.

	`tree` is the module holding the standalone worklet; its module scope
	stands in for the global scope and never makes a name local.
	"""
	scopes = ScopeTree.build(tree)
	# A method's own name is not visible from its body; only plain defs skip it
	own_name = fun.own_name if fun.form == "def" else None
	captures = CaptureSet()
	for node, scope in scopes.references:
		name = node.id
		if name in captures or name == own_name or is_global(name, extra_globals):
			continue
		if scopes.is_local(name, scope):
			continue
		captures.add(CapturedBinding(name, node))
	return captures


def _iter_loads(roots: Iterable[ast.AST]) -> Iterator[ast.Name]:
	"""Depth-first, source-ordered `Load` names below `roots`."""
	stack = list(reversed(list(roots)))
	while stack:
		node = stack.pop()
		if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
			yield node
		stack.extend(reversed(list(ast.iter_child_nodes(node))))


def _original_roots(node: FunctionNode) -> list[ast.AST]:
	# Annotations are lowered away and decorators stay behind, skip both
	roots: list[ast.AST] = [*node.args.defaults]
	roots.extend(default for default in node.args.kw_defaults if default is not None)
	if isinstance(node, ast.Lambda):
		roots.append(node.body)
	else:
		roots.extend(node.body)
	return roots


def assign_original_locations(
	captures: CaptureSet, fun: WorkletFunction, filename: str | None
) -> None:
	"""Second pass: point each capture at its first reference in the original.

	Only fills locations that are still unassigned; never adds bindings.
	"""
	for node in _iter_loads(_original_roots(fun.node)):
		binding = captures.get(node.id)
		if binding is None or binding.location is not None:
			continue
		binding.location = SourceLocation.of(node, filename)


def collect_captured_bindings(
	tree: ast.AST,
	fun: WorkletFunction,
	filename: str | None,
	extra_globals: frozenset[str] = frozenset(),
) -> CaptureSet:
	captures = find_captured_bindings(tree, fun, extra_globals)
	assign_original_locations(captures, fun, filename)
	return captures
