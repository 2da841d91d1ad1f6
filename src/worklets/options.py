from __future__ import annotations

import os
from dataclasses import dataclass, field

from worklets.env import is_release, should_mock_version


@dataclass(frozen=True, slots=True)
class WorkletOptions:
	"""Configuration recognized by the worklet transform.

	- release: suppress the diagnostic anchor, location, source map and
	  version. `None` defers to the environment (see `worklets.env`).
	- omit_native_only_data: never emit init data, whatever the mode.
	- relative_source_location: report origin paths relative to `cwd`, both
	  in the location field and inside the embedded source map.
	- disable_source_maps: keep location/version but skip the source map.
	- mock_version: emit a fixed placeholder version. `None` defers to the
	  environment.
	- extra_globals: names the target runtime provides, never captured.
	- cwd: base directory for relative locations (defaults to os.getcwd()).
	"""

	release: bool | None = None
	omit_native_only_data: bool = False
	relative_source_location: bool = False
	disable_source_maps: bool = False
	mock_version: bool | None = None
	extra_globals: frozenset[str] = field(default_factory=frozenset)
	cwd: str | None = None

	@property
	def is_release(self) -> bool:
		if self.release is None:
			return is_release()
		return self.release

	@property
	def is_version_mocked(self) -> bool:
		if self.mock_version is None:
			return should_mock_version()
		return self.mock_version

	@property
	def base_directory(self) -> str:
		return self.cwd if self.cwd is not None else os.getcwd()

	@property
	def include_location(self) -> bool:
		return not self.is_release

	@property
	def include_source_map(self) -> bool:
		return not self.is_release and not self.disable_source_maps

	@property
	def include_version(self) -> bool:
		return not self.is_release

	@property
	def include_stack_details(self) -> bool:
		return not self.is_release

	@property
	def include_init_data(self) -> bool:
		return not self.omit_native_only_data
