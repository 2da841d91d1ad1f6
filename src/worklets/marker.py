from __future__ import annotations

from collections.abc import Callable
from typing import ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")


def worklet(fn: Callable[P, R]) -> Callable[P, R]:
	"""Mark a function or lambda for worklet packaging.

	The build-time transform removes the marker. Untransformed code keeps
	working because at runtime this returns `fn` unchanged.
	"""
	return fn
