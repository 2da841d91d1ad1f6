from __future__ import annotations

import ast
import logging
import os
from dataclasses import dataclass, field
from typing import Any

from worklets.sourcemap import relocate_source_map
from worklets.synthesis import SynthesizedSource
from worklets.unit import CompilationUnit
from worklets.version import MOCK_VERSION, __version__

logger = logging.getLogger(__name__)

INIT_DATA_KEYS = ("code", "location", "source_map", "version")


@dataclass(frozen=True, slots=True)
class InitData:
	"""Data the secondary runtime needs to instantiate a worklet."""

	code: str
	location: str | None = None
	source_map: str | None = None
	version: str | None = None

	def to_dict(self) -> dict[str, str]:
		return {
			key: value
			for key in INIT_DATA_KEYS
			if (value := getattr(self, key)) is not None
		}

	def to_ast(self) -> ast.Dict:
		data = self.to_dict()
		return ast.Dict(
			keys=[ast.Constant(key) for key in data],
			values=[ast.Constant(value) for value in data.values()],
		)


@dataclass(slots=True)
class InitDataBuilder:
	"""Accumulate optional init-data fields, then freeze them into one record."""

	code: str
	_fields: list[tuple[str, Any]] = field(default_factory=list)

	def add(self, key: str, value: Any, enabled: bool = True) -> "InitDataBuilder":
		if enabled and value is not None:
			self._fields.append((key, value))
		return self

	def build(self) -> InitData:
		return InitData(code=self.code, **dict(self._fields))


def resolve_location(unit: CompilationUnit) -> str:
	location = unit.require_filename()
	if unit.options.relative_source_location:
		location = os.path.relpath(location, unit.options.base_directory)
	return location


def build_init_data(
	synthesized: SynthesizedSource, unit: CompilationUnit
) -> InitData | None:
	"""Assemble the init data for a worklet, or None when it must be omitted."""
	options = unit.options
	if not options.include_init_data:
		return None

	filename = unit.require_filename()
	location = resolve_location(unit)
	source_map = synthesized.source_map
	if source_map is not None and location != filename:
		source_map = relocate_source_map(source_map, filename, location)

	version = MOCK_VERSION if options.is_version_mocked else __version__
	return (
		InitDataBuilder(synthesized.code)
		.add("location", location, options.include_location)
		.add("source_map", source_map, options.include_source_map)
		.add("version", version, options.include_version)
		.build()
	)


def init_data_statement(name: str, init_data: InitData) -> ast.Assign:
	"""Module-level constant holding `init_data`, referenced by the wrapper."""
	logger.debug("Hoisting init data as %s (%d keys)", name, len(init_data.to_dict()))
	return ast.Assign(
		targets=[ast.Name(id=name, ctx=ast.Store())],
		value=init_data.to_ast(),
	)
