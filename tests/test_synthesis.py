import ast
import json
import textwrap
from typing import Any

import pytest
from worklets.errors import PreconditionError, SynthesisError
from worklets.function import WorkletFunction
from worklets.synthesis import synthesize
from worklets.unit import CompilationUnit

FILENAME = "/app/src/module.py"
_BASE64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"


def _worklet(source: str, *, method: bool = False, filename: str | None = FILENAME):
	source = textwrap.dedent(source)
	tree = ast.parse(source)
	node = next(
		n
		for n in ast.walk(tree)
		if isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda))
	)
	fun = WorkletFunction.from_node(node, in_class_body=method)
	unit = CompilationUnit.for_module(tree, filename, source=source)
	return fun, unit


def _synthesize(source: str, **kwargs: Any):
	fun, unit = _worklet(source, **kwargs)
	return synthesize(fun, unit).source


def _vlq_values(segment: str) -> list[int]:
	values: list[int] = []
	shift = value = 0
	for char in segment:
		digit = _BASE64.index(char)
		value += (digit & 31) << shift
		if digit & 32:
			shift += 5
			continue
		values.append(-(value >> 1) if value & 1 else value >> 1)
		shift = value = 0
	return values


def _decode(mappings: str) -> list[tuple[tuple[int, int], tuple[int, int]]]:
	"""Absolute ((generated line, column), (source line, column)) pairs."""
	decoded: list[tuple[tuple[int, int], tuple[int, int]]] = []
	source_line = source_column = 0
	for generated_line, group in enumerate(mappings.split(";"), start=1):
		generated_column = 0
		for segment in filter(None, group.split(",")):
			values = _vlq_values(segment)
			generated_column += values[0]
			source_line += values[2]
			source_column += values[3]
			decoded.append(((generated_line, generated_column), (source_line + 1, source_column)))
	return decoded


class TestCode:
	def test_function_definition(self):
		source = _synthesize(
			"""
			outer = 1

			def add(a, b):
				return a + b + outer
			"""
		)
		assert source.code == "def add(a, b):\n    return a + b + outer\n"

	def test_lambda_is_parenthesized(self):
		source = _synthesize("double = worklet(lambda x: x * factor)\n")
		assert source.code == "(lambda x: x * factor\n)"
		assert eval(source.code, {"factor": 2})(3) == 6

	def test_decorators_are_dropped(self):
		source = _synthesize(
			"""
			@cache
			@trace("add")
			def add(a, b):
				return a + b
			"""
		)
		assert source.code == "def add(a, b):\n    return a + b\n"

	def test_method_is_dedented(self):
		source = _synthesize(
			"""
			class Counter:
				def bump(self, value):
					return value + 1
			""",
			method=True,
		)
		assert source.code == "def bump(self, value):\n    return value + 1\n"

	def test_code_is_lowered(self):
		source = _synthesize(
			"""
			def label(value: float, /) -> str:
				prefix: str = "v="
				return f"{prefix}{value:.1f}"
			"""
		)
		assert source.code == (
			"def label(value):\n"
			"    prefix = 'v='\n"
			"    return '{}{:.1f}'.format(prefix, value)\n"
		)

	def test_async_definition(self):
		source = _synthesize("async def load(client):\n    return await client.get()\n")
		assert source.code.startswith("async def load(client):")

	def test_deterministic(self):
		text = """
		def add(a, b):
			return a + b + outer
		"""
		first = _synthesize(text)
		second = _synthesize(text)
		assert first == second


def test_round_trip_matches_original():
	text = textwrap.dedent(
		"""
		scale = 3

		def render(xs: list[int], /, *, bias: int = 1) -> list[str]:
			total: int = sum(xs)
			return [f"{x * scale:>3}|{total + bias!r}" for x in xs]
		"""
	)
	original: dict[str, Any] = {}
	exec(compile(text, FILENAME, "exec"), original)

	source = _synthesize(text)
	standalone: dict[str, Any] = {"scale": 3}
	exec(compile(source.code, FILENAME, "exec"), standalone)

	assert standalone["render"]([1, 2], bias=5) == original["render"]([1, 2], bias=5)
	assert standalone["render"]([]) == original["render"]([])


class TestErrors:
	def test_requires_filename(self):
		fun, unit = _worklet("def f():\n    return 1\n", filename=None)
		with pytest.raises(PreconditionError):
			synthesize(fun, unit)

	def test_zero_argument_super(self):
		fun, unit = _worklet(
			"""
			class Child(Base):
				def greet(self):
					return super().greet()
			""",
			method=True,
		)
		with pytest.raises(SynthesisError, match="super"):
			synthesize(fun, unit)

	def test_class_cell(self):
		fun, unit = _worklet(
			"""
			class Child:
				def kind(self):
					return __class__
			""",
			method=True,
		)
		with pytest.raises(SynthesisError, match="__class__"):
			synthesize(fun, unit)

	def test_super_inside_nested_class_is_allowed(self):
		source = _synthesize(
			"""
			def make(Base):
				class Child(Base):
					def greet(self):
						return super().greet()
				return Child
			"""
		)
		assert "super().greet()" in source.code


class TestSourceMap:
	def test_document(self):
		source = _synthesize("import os\n\ndef add(a, b):\n    return a + b\n")
		assert source.source_map is not None
		data = json.loads(source.source_map)
		assert data["version"] == 3
		assert data["sources"] == [FILENAME]
		assert data["names"] == []
		assert data["mappings"].startswith("AAEA")
		assert all(data["mappings"].split(";"))

	def test_maps_back_to_original_lines(self):
		source = _synthesize(
			"""
			class Counter:
				def bump(self, value):
					return value + 1
			""",
			method=True,
		)
		assert source.source_map is not None
		decoded = _decode(json.loads(source.source_map)["mappings"])
		# The dedented def still points at its tab-indented origin
		assert ((1, 0), (3, 1)) in decoded
		assert ((2, 4), (4, 2)) in decoded

	def test_lowered_statements_keep_their_origin(self):
		source = _synthesize("def f(x: int) -> int:\n    y: int = x\n    return y\n")
		assert source.code == "def f(x):\n    y = x\n    return y\n"
		assert source.source_map is not None
		decoded = _decode(json.loads(source.source_map)["mappings"])
		assert ((2, 4), (2, 4)) in decoded
		assert ((3, 4), (3, 4)) in decoded

	def test_columns_are_utf16(self):
		source = _synthesize("label = 'x'\n\ndef f():\n    return '🎉' + label\n")
		assert source.source_map is not None
		decoded = _decode(json.loads(source.source_map)["mappings"])
		# `label` follows a two-unit astral character on both sides
		assert ((2, 18), (4, 18)) in decoded
