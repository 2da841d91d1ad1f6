from __future__ import annotations

import ast
import re
from dataclasses import dataclass, field

from worklets.errors import PreconditionError
from worklets.options import WorkletOptions


@dataclass(slots=True)
class CompilationUnit:
	"""Per-file state of the worklet transform.

	Create one instance per compiled file. The worklet counter only guarantees
	unique names within the unit that owns it, so instances must never be
	shared between files (or between workers compiling files in parallel).
	"""

	filename: str | None
	source: str | None = None
	options: WorkletOptions = field(default_factory=WorkletOptions)
	worklet_number: int = 1
	used_names: set[str] = field(default_factory=set)

	@staticmethod
	def for_module(
		tree: ast.Module,
		filename: str | None,
		source: str | None = None,
		options: WorkletOptions | None = None,
	) -> "CompilationUnit":
		unit = CompilationUnit(
			filename=filename,
			source=source,
			options=options if options is not None else WorkletOptions(),
		)
		unit.reserve_names(tree)
		return unit

	def require_filename(self) -> str:
		if not self.filename:
			raise PreconditionError("the originating filename is undefined")
		return self.filename

	def next_worklet_number(self) -> int:
		number = self.worklet_number
		self.worklet_number += 1
		return number

	def reserve_names(self, tree: ast.AST) -> None:
		for node in ast.walk(tree):
			if isinstance(node, ast.Name):
				self.used_names.add(node.id)
			elif isinstance(
				node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)
			):
				self.used_names.add(node.name)
			elif isinstance(node, ast.arg):
				self.used_names.add(node.arg)
			elif isinstance(node, ast.alias):
				self.used_names.add((node.asname or node.name).split(".")[0])

	def generate_uid(self, name: str) -> str:
		"""Return a fresh `_name`, `_name2`, ... not used anywhere in the module."""
		base = re.sub(r"\d+$", "", name.lstrip("_")) or "temp"
		i = 1
		while True:
			uid = f"_{base}{i if i > 1 else ''}"
			if uid not in self.used_names:
				self.used_names.add(uid)
				return uid
			i += 1
