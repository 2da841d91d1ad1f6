"""Assembly of the worklet factory that replaces a marked function.

For a worklet `add` in `module.py` capturing `outer`, the emitted code is:

	_worklet_1234_init_data = {'code': '...', 'location': '...', ...}

	def _add_modulePy1_factory():
		_e = [Exception(), -2, -15]
		def add_modulePy1(a, b):
			return a + b + outer
		add_modulePy1._closure = {'outer': outer}
		add_modulePy1._worklet_hash = 1234
		add_modulePy1._init_data = _worklet_1234_init_data
		add_modulePy1._stack_details = _e
		return add_modulePy1

The caller substitutes `_add_modulePy1_factory()` for the original function.
"""

from __future__ import annotations

import ast
import copy
import logging
from dataclasses import dataclass

from worklets.closure import CaptureSet, collect_captured_bindings
from worklets.directive import remove_worklet_directive
from worklets.errors import ensure
from worklets.function import WorkletFunction
from worklets.hashing import worklet_hash
from worklets.metadata import InitData, build_init_data, init_data_statement
from worklets.naming import make_worklet_name
from worklets.options import WorkletOptions
from worklets.synthesis import SynthesizedSource, synthesize
from worklets.unit import CompilationUnit

logger = logging.getLogger(__name__)

STACK_ANCHOR = "_e"

# Attribute names the secondary runtime reads from a packaged worklet
CLOSURE_ATTR = "_closure"
HASH_ATTR = "_worklet_hash"
INIT_DATA_ATTR = "_init_data"
STACK_DETAILS_ATTR = "_stack_details"


@dataclass(frozen=True, slots=True)
class WorkletFactory:
	function: WorkletFunction
	name: str
	hash: int
	captures: CaptureSet
	source: SynthesizedSource
	init_data: InitData | None
	init_data_name: str | None
	factory: ast.FunctionDef

	@property
	def closure_names(self) -> list[str]:
		return self.captures.names

	def init_data_statement(self) -> ast.Assign | None:
		if self.init_data is None or self.init_data_name is None:
			return None
		return init_data_statement(self.init_data_name, self.init_data)

	def call(self) -> ast.Call:
		"""Expression evaluating to the finished worklet."""
		return ast.Call(
			func=ast.Name(id=self.factory.name, ctx=ast.Load()), args=[], keywords=[]
		)


def line_offset(captures: CaptureSet) -> int:
	"""Line shift introduced by the runtime's closure-unpacking prologue.

	The prologue unpacks one capture per line between an opening and a
	closing line, so it is only present when something is captured.
	"""
	offset = 1
	if len(captures) > 0:
		offset -= len(captures) + 2
	return offset


def stack_column_offset(anchor: str) -> int:
	# Column of the parenthesis following `Exception` on the anchor line
	return -len(f"{anchor} = [Exception")


def _anchor_name(captures: CaptureSet, name: str) -> str:
	anchor = STACK_ANCHOR
	index = 0
	while anchor in captures or anchor == name:
		index += 1
		anchor = f"{STACK_ANCHOR}_{index}"
	return anchor


def _load(name: str) -> ast.Name:
	return ast.Name(id=name, ctx=ast.Load())


def _set_attribute(target: str, attr: str, value: ast.expr) -> ast.Assign:
	return ast.Assign(
		targets=[ast.Attribute(value=_load(target), attr=attr, ctx=ast.Store())],
		value=value,
	)


def _inner_function(fun: WorkletFunction, name: str) -> ast.stmt:
	clone = copy.deepcopy(fun.node)
	if isinstance(clone, ast.Lambda):
		return ast.copy_location(
			ast.Assign(targets=[ast.Name(id=name, ctx=ast.Store())], value=clone), clone
		)
	ensure(
		isinstance(clone, (ast.FunctionDef, ast.AsyncFunctionDef)),
		"worklet body must be a function definition",
	)
	clone.name = name
	# Decorators are re-applied by the caller to the factory result
	clone.decorator_list = []
	return clone


def emit_factory(
	fun: WorkletFunction,
	*,
	name: str,
	factory_name: str,
	captures: CaptureSet,
	identity: int,
	init_data_name: str | None,
	options: WorkletOptions,
) -> ast.FunctionDef:
	closure = ast.Dict(
		keys=[ast.Constant(binding.name) for binding in captures],
		values=[_load(binding.name) for binding in captures],
	)
	statements: list[ast.stmt] = [
		_inner_function(fun, name),
		_set_attribute(name, CLOSURE_ATTR, closure),
		_set_attribute(name, HASH_ATTR, ast.Constant(identity)),
	]
	if init_data_name is not None:
		statements.append(_set_attribute(name, INIT_DATA_ATTR, _load(init_data_name)))

	if options.include_stack_details:
		anchor = _anchor_name(captures, name)
		error = ast.Call(func=_load("Exception"), args=[], keywords=[])
		details = ast.List(
			elts=[
				error,
				ast.Constant(line_offset(captures)),
				ast.Constant(stack_column_offset(anchor)),
			],
			ctx=ast.Load(),
		)
		# First statement, so later insertions cannot move the anchor's line
		statements.insert(
			0, ast.Assign(targets=[ast.Name(id=anchor, ctx=ast.Store())], value=details)
		)
		statements.append(_set_attribute(name, STACK_DETAILS_ATTR, _load(anchor)))

	statements.append(ast.Return(value=_load(name)))

	factory = ast.FunctionDef(
		name=factory_name,
		args=ast.arguments(
			posonlyargs=[],
			args=[],
			vararg=None,
			kwonlyargs=[],
			kw_defaults=[],
			kwarg=None,
			defaults=[],
		),
		body=statements,
		decorator_list=[],
		returns=None,
		type_comment=None,
		type_params=[],
	)
	return ast.fix_missing_locations(ast.copy_location(factory, fun.node))


def make_worklet_factory(fun: WorkletFunction, unit: CompilationUnit) -> WorkletFactory:
	"""Package `fun` as a worklet.

	Strips the directive from `fun` in place. Raises a WorkletError subclass
	if packaging fails; nothing is emitted in that case.
	"""
	filename = unit.require_filename()
	remove_worklet_directive(fun)

	synthesis = synthesize(fun, unit)
	captures = collect_captured_bindings(
		synthesis.tree, fun, filename, unit.options.extra_globals
	)
	identity = worklet_hash(synthesis.source.code)
	name = make_worklet_name(fun, unit)

	init_data = build_init_data(synthesis.source, unit)
	init_data_name = (
		unit.generate_uid(f"worklet_{identity}_init_data")
		if init_data is not None
		else None
	)
	factory = emit_factory(
		fun,
		name=name,
		factory_name=unit.generate_uid(f"{name}_factory"),
		captures=captures,
		identity=identity,
		init_data_name=init_data_name,
		options=unit.options,
	)
	logger.debug(
		"Packaged %s as %s (hash=%d, captures=%s)",
		fun.describe(),
		name,
		identity,
		captures.names,
	)
	return WorkletFactory(
		function=fun,
		name=name,
		hash=identity,
		captures=captures,
		source=synthesis.source,
		init_data=init_data,
		init_data_name=init_data_name,
		factory=factory,
	)
