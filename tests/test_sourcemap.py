import ast
import json

import pytest
from worklets.sourcemap import (
	ColumnConverter,
	SourceMapBuilder,
	encode_vlq,
	paired_positions,
	relocate_source_map,
)


@pytest.mark.parametrize(
	("value", "expected"),
	[(0, "A"), (1, "C"), (-1, "D"), (4, "I"), (15, "e"), (16, "gB"), (123, "2H")],
)
def test_encode_vlq(value: int, expected: str):
	assert encode_vlq(value) == expected


class TestColumnConverter:
	def test_ascii_is_identity(self):
		convert = ColumnConverter("x = y + z\n")
		assert convert(1, 8) == 8

	def test_two_byte_character(self):
		convert = ColumnConverter("x = 'é' + y\n")
		assert convert(1, 11) == 10

	def test_astral_character_counts_twice(self):
		convert = ColumnConverter("s = '🎉' + y\n")
		assert convert(1, 13) == 11

	def test_unknown_text_or_line(self):
		assert ColumnConverter(None)(1, 7) == 7
		assert ColumnConverter("a\n")(5, 3) == 3


class TestSourceMapBuilder:
	def test_encodes_relative_segments(self):
		builder = SourceMapBuilder(source="/app/m.py")
		builder.add((1, 0), (3, 0))
		builder.add((1, 4), (3, 8))
		builder.add((2, 0), (4, 4))
		assert len(builder) == 3
		assert builder.encode_mappings() == "AAEA,IAAQ;AACJ"

	def test_first_mapping_wins(self):
		builder = SourceMapBuilder(source="/app/m.py")
		builder.add((1, 0), (3, 0))
		builder.add((1, 0), (9, 9))
		assert builder.encode_mappings() == "AAEA"

	def test_empty_lines_are_kept(self):
		builder = SourceMapBuilder(source="/app/m.py")
		builder.add((3, 2), (1, 0))
		assert builder.encode_mappings() == ";;EAAA"

	def test_document_shape(self):
		builder = SourceMapBuilder(source="/app/m.py")
		builder.add((1, 0), (1, 0))
		data = json.loads(builder.to_json())
		assert data == {
			"version": 3,
			"sources": ["/app/m.py"],
			"names": [],
			"mappings": "AAAA",
		}
		assert " " not in builder.to_json()

	def test_file_field(self):
		builder = SourceMapBuilder(source="/app/m.py", file="out.py")
		assert builder.to_dict()["file"] == "out.py"


def test_relocate_source_map():
	builder = SourceMapBuilder(source="/app/src/m.py", file="/app/src/m.py")
	builder.add((1, 0), (2, 0))
	relocated = json.loads(relocate_source_map(builder.to_json(), "/app/src/m.py", "src/m.py"))
	assert relocated["sources"] == ["src/m.py"]
	assert relocated["file"] == "src/m.py"
	assert relocated["mappings"] == "AACA"


class TestPairedPositions:
	def test_pairs_matching_nodes(self):
		located = ast.parse("\n\nx = y\n")
		generated = ast.parse("x = y\n")
		pairs = list(paired_positions(located, generated))
		assert ((1, 0), (3, 0)) in pairs
		assert ((1, 4), (3, 4)) in pairs

	def test_stops_at_mismatch(self):
		pairs = list(paired_positions(ast.parse("x = 1\n"), ast.parse("y()\n")))
		assert pairs == []
