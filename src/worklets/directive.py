from __future__ import annotations

import ast

from worklets.function import FunctionNode, WorkletFunction

WORKLET_DIRECTIVE = "worklet"


def _is_string_statement(stmt: ast.stmt) -> bool:
	return (
		isinstance(stmt, ast.Expr)
		and isinstance(stmt.value, ast.Constant)
		and isinstance(stmt.value.value, str)
	)


def _is_directive(stmt: ast.stmt) -> bool:
	return _is_string_statement(stmt) and stmt.value.value == WORKLET_DIRECTIVE  # pyright: ignore[reportAttributeAccessIssue]


def _prologue_length(body: list[ast.stmt]) -> int:
	"""Number of leading string-literal statements (docstring and directives)."""
	count = 0
	for stmt in body:
		if not _is_string_statement(stmt):
			break
		count += 1
	return count


def has_worklet_directive(node: FunctionNode) -> bool:
	if isinstance(node, ast.Lambda):
		return False
	prologue = node.body[: _prologue_length(node.body)]
	return any(_is_directive(stmt) for stmt in prologue)


def remove_worklet_directive(fun: WorkletFunction) -> None:
	"""Strip the worklet directive from the function's own prologue.

	Only the function's own body is touched; nested functions keep their
	directives.
	"""
	node = fun.node
	if isinstance(node, ast.Lambda):
		return
	prologue = _prologue_length(node.body)
	kept = [stmt for stmt in node.body[:prologue] if not _is_directive(stmt)]
	body = kept + node.body[prologue:]
	if not body:
		body = [ast.copy_location(ast.Pass(), node)]
	node.body = body
