"""Identifiers the target interpreter always provides.

References to these names are resolved by the receiving runtime and are
never captured into a worklet's closure.
"""

from __future__ import annotations

import builtins

GLOBALS: frozenset[str] = frozenset(
	name for name in dir(builtins) if not name.startswith("_")
) | frozenset(
	{
		"__build_class__",
		"__debug__",
		"__import__",
		"__name__",
		# Set by the worklet runtime when code executes in the secondary context
		"_WORKLET",
	}
)


def is_global(name: str, extra: frozenset[str] = frozenset()) -> bool:
	return name in GLOBALS or name in extra
