"""Minimal Source Map v3 writer for synthesized worklet source.

Positions are correlated by walking two structurally identical trees in
lockstep: one whose nodes carry the positions we map *to* and one parsed from
the text we map *from*.
"""

from __future__ import annotations

import ast
import json
from collections.abc import Iterator
from dataclasses import dataclass, field

_BASE64_DIGITS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"

Position = tuple[int, int]


def encode_vlq(value: int) -> str:
	vlq = ((-value) << 1) | 1 if value < 0 else value << 1
	out: list[str] = []
	while True:
		digit = vlq & 0b11111
		vlq >>= 5
		if vlq:
			digit |= 0b100000
		out.append(_BASE64_DIGITS[digit])
		if not vlq:
			return "".join(out)


def paired_positions(
	located: ast.AST, generated: ast.AST
) -> Iterator[tuple[Position, Position]]:
	"""Yield `(generated_position, located_position)` for matching nodes.

	Both trees are walked in the same order; correlation stops at the first
	structural mismatch. Positions are `(lineno, col_offset)` as reported by
	`ast`, i.e. 1-based lines and UTF-8 byte columns.
	"""
	for source_node, generated_node in zip(ast.walk(located), ast.walk(generated)):
		if type(source_node) is not type(generated_node):
			return
		if hasattr(source_node, "lineno") and hasattr(generated_node, "lineno"):
			yield (
				(generated_node.lineno, generated_node.col_offset),  # pyright: ignore[reportAttributeAccessIssue]
				(source_node.lineno, source_node.col_offset),  # pyright: ignore[reportAttributeAccessIssue]
			)


class ColumnConverter:
	"""Convert `ast` byte columns into UTF-16 columns for a given text."""

	_lines: list[str] | None

	def __init__(self, text: str | None) -> None:
		self._lines = text.splitlines() if text is not None else None

	def __call__(self, line: int, byte_column: int) -> int:
		if self._lines is None or not 0 < line <= len(self._lines):
			return byte_column
		prefix = self._lines[line - 1].encode("utf-8")[:byte_column]
		text = prefix.decode("utf-8", errors="ignore")
		return len(text.encode("utf-16-le")) // 2


@dataclass(slots=True)
class SourceMapBuilder:
	source: str
	file: str | None = None
	_mappings: dict[Position, Position] = field(default_factory=dict)

	def add(self, generated: Position, original: Position) -> None:
		"""Record a mapping; lines are 1-based and columns 0-based."""
		self._mappings.setdefault(generated, original)

	def __len__(self) -> int:
		return len(self._mappings)

	def encode_mappings(self) -> str:
		lines: list[str] = []
		previous_source_line = 0
		previous_source_column = 0
		current_line = 1
		segments: list[str] = []
		previous_column = 0
		for (line, column), (source_line, source_column) in sorted(
			self._mappings.items()
		):
			while current_line < line:
				lines.append(",".join(segments))
				segments = []
				previous_column = 0
				current_line += 1
			segments.append(
				encode_vlq(column - previous_column)
				+ encode_vlq(0)
				+ encode_vlq(source_line - 1 - previous_source_line)
				+ encode_vlq(source_column - previous_source_column)
			)
			previous_column = column
			previous_source_line = source_line - 1
			previous_source_column = source_column
		lines.append(",".join(segments))
		return ";".join(lines)

	def to_dict(self) -> dict[str, object]:
		data: dict[str, object] = {"version": 3}
		if self.file is not None:
			data["file"] = self.file
		data["sources"] = [self.source]
		data["names"] = []
		data["mappings"] = self.encode_mappings()
		return data

	def to_json(self) -> str:
		return json.dumps(self.to_dict(), separators=(",", ":"))


def relocate_source_map(source_map: str, old: str, new: str) -> str:
	"""Rewrite every occurrence of path `old` in a serialized map to `new`."""
	data = json.loads(source_map)
	data["sources"] = [new if source == old else source for source in data["sources"]]
	if data.get("file") == old:
		data["file"] = new
	return json.dumps(data, separators=(",", ":"))
