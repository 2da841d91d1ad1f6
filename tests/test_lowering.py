import ast
import textwrap
from typing import Any

import pytest
from worklets.lowering import (
	LOWERING_PIPELINE,
	LowerFormattedStrings,
	LowerPositionalOnlyParameters,
	StripTypeAnnotations,
	lower,
)


def _lower(source: str) -> str:
	return ast.unparse(lower(ast.parse(textwrap.dedent(source))))


def _call(source: str, *args: Any) -> Any:
	"""Run the single function in `source`, once as written and once lowered."""
	source = textwrap.dedent(source)
	results: list[Any] = []
	for tree in (ast.parse(source), lower(ast.parse(source))):
		namespace: dict[str, Any] = {}
		exec(compile(tree, "<test>", "exec"), namespace)
		fn = namespace["f"]
		results.append(fn(*args))
	original, lowered = results
	assert original == lowered
	return lowered


def test_pipeline_order():
	assert LOWERING_PIPELINE == (
		StripTypeAnnotations,
		LowerPositionalOnlyParameters,
		LowerFormattedStrings,
	)


class TestStripTypeAnnotations:
	def test_parameters_and_return(self):
		code = _lower(
			"""
			def f(x: int, *rest: str, k: float = 1.0, **extra: dict) -> int:
				return x
			"""
		)
		assert code == "def f(x, *rest, k=1.0, **extra):\n    return x"

	def test_annotated_assignment_keeps_value(self):
		code = _lower(
			"""
			def f(x):
				y: int = x
				z: str
				return y
			"""
		)
		assert code == "def f(x):\n    y = x\n    if False:\n        del z\n    return y"

	def test_type_parameters(self):
		assert _lower("def f[T](x: T) -> T:\n    return x\n") == "def f(x):\n    return x"

	def test_emptied_blocks_get_pass(self):
		code = _lower(
			"""
			def f(obj, flag):
				if flag:
					obj.x: int
				else:
					obj.y: int
			"""
		)
		assert code == "def f(obj, flag):\n    if flag:\n        pass\n    else:\n        pass"

	def test_bare_annotation_keeps_name_local(self):
		source = """
		def f():
			x: int
			try:
				return x
			except NameError:
				return "unbound"

		x = "module"
		"""
		assert _call(source) == "unbound"

	def test_nested_class(self):
		code = _lower(
			"""
			def f():
				class Point:
					x: int
					y: int = 0
				return Point
			"""
		)
		assert "x: int" not in code
		assert "y = 0" in code


class TestLowerPositionalOnlyParameters:
	def test_merges_into_positional(self):
		assert _lower("def f(a, b, /, c):\n    return a\n") == "def f(a, b, c):\n    return a"

	def test_kept_with_var_keywords(self):
		code = _lower("def f(a, /, **kw):\n    return (a, kw)\n")
		assert "/" in code
		assert _call("def f(a, /, **kw):\n    return (a, kw)\n", 1) == (1, {})

	def test_lambda(self):
		assert _lower("g = lambda a, /, b: a + b\n") == "g = lambda a, b: a + b"

	def test_defaults_still_apply(self):
		assert _call("def f(a, b=2, /):\n    return a * b\n", 3) == 6


class TestLowerFormattedStrings:
	def test_conversion_and_spec(self):
		code = _lower("def f(x):\n    return f'a{x!r:>4}b'\n")
		assert code == "def f(x):\n    return 'a{!r:>4}b'.format(x)"

	def test_single_value(self):
		assert _lower("s = f'{x}'\n") == "s = '{}'.format(x)"

	def test_conversion_without_spec(self):
		assert _lower("s = f'{x!a}'\n") == "s = '{!a}'.format(x)"

	def test_nested_spec_becomes_argument(self):
		assert _lower("s = f'{x:{w}}'\n") == "s = '{:{}}'.format(x, w)"

	def test_literal_braces_are_escaped(self):
		assert _lower("s = f'{{{x}}}'\n") == "s = '{{{}}}'.format(x)"
		assert _lower("s = f'{{a}}'\n") == "s = '{a}'"
		assert _call("def f(x):\n    return f'{{{x}}}'\n", 1) == "{1}"

	def test_shadowed_builtin_parameter(self):
		source = "def f(value, format):\n    return f'{value}:{format}'\n"
		assert _call(source, 1, "png") == "1:png"

	def test_shadowed_builtin_local(self):
		source = "def f(x):\n    str = 'n'\n    return f'{x!s}{str}'\n"
		assert _call(source, 5) == "5n"

	def test_evaluation_order(self):
		source = """
		def f():
			calls = []
			def mark(value):
				calls.append(value)
				return value
			text = f"{mark(1):{mark(2)}}{mark(3)}"
			return text, calls
		"""
		assert _call(source) == (" 13", [1, 2, 3])

	def test_empty(self):
		assert _lower("s = f''\n") == "s = ''"

	def test_no_f_string_left(self):
		tree = lower(ast.parse("s = f'{a}-{b:{width}}-{c!s}'\n"))
		assert not any(isinstance(node, ast.JoinedStr) for node in ast.walk(tree))

	@pytest.mark.parametrize(
		"value",
		[3.14159, "text", 42, None, [1, "two"]],
	)
	def test_behaves_like_original(self, value: Any):
		source = """
		def f(x):
			return f"<{x}|{x!r}|{x!s:>12}|{str(x):^{width}}>"

		width = 9
		"""
		_call(source, value)

	def test_nested_format_spec(self):
		assert _call("def f(x, w):\n    return f'{x:{w}.2f}'\n", 2.5, 8) == "    2.50"


def test_lowered_tree_compiles():
	tree = lower(
		ast.parse(
			textwrap.dedent(
				"""
				def f(a: int, /, b: int) -> str:
					total: int = a + b
					return f"{total:04d}"
				"""
			)
		)
	)
	namespace: dict[str, Any] = {}
	exec(compile(tree, "<test>", "exec"), namespace)
	assert namespace["f"](1, 2) == "0003"
