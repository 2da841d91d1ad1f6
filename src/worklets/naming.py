from __future__ import annotations

import keyword
import os
import re

from worklets.function import WorkletFunction
from worklets.unit import CompilationUnit

UNKNOWN_FILE = "unknownFile"

# Path components that mark the boundary of an installed distribution
PACKAGE_DIRECTORIES = ("site-packages", "dist-packages")

_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_]")
_LEADING_INVALID = re.compile(r"^[-0-9]+")
_SEPARATOR_RUNS = re.compile(r"[-\s]+(.)?")


def to_identifier(name: str) -> str:
	"""Coerce an arbitrary string into a valid identifier.

	Invalid characters act as word separators: `module.py1` becomes
	`modulePy1`.
	"""
	name = _INVALID_CHARS.sub("-", name)
	name = _LEADING_INVALID.sub("", name)
	name = _SEPARATOR_RUNS.sub(
		lambda m: m.group(1).upper() if m.group(1) else "", name
	)
	if not name.isidentifier() or keyword.iskeyword(name):
		name = f"_{name}"
	return name or "_"


def source_name(filename: str | None) -> str:
	if not filename:
		return UNKNOWN_FILE
	source = os.path.basename(filename)
	parts = filename.replace("\\", "/").split("/")
	for directory in PACKAGE_DIRECTORIES:
		if directory in parts:
			index = parts.index(directory)
			if index + 1 < len(parts):
				source = f"{parts[index + 1]}_{source}"
			break
	return source


def make_worklet_name(fun: WorkletFunction, unit: CompilationUnit) -> str:
	"""Resolve the identifier a worklet is declared under.

	The per-unit counter is consumed on every call, so worklets from the same
	file never share a name even when their declared names collide.
	"""
	suffix = f"{source_name(unit.filename)}{unit.next_worklet_number()}"
	own_name = fun.own_name
	if own_name:
		return to_identifier(f"{own_name}_{suffix}")
	return to_identifier(suffix)
