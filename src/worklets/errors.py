"""Errors raised while packaging worklets.

Every failure is fatal for the worklet being processed: no partial wrapper is
emitted and the error propagates to whoever drives the transform.
"""

from __future__ import annotations

from typing import NoReturn


class WorkletError(Exception):
	"""Base class for worklet transform failures."""

	filename: str | None
	worklet: str | None

	def __init__(
		self, message: str, *, filename: str | None = None, worklet: str | None = None
	) -> None:
		self.filename = filename
		self.worklet = worklet
		super().__init__(message)

	def __str__(self) -> str:
		message = super().__str__()
		context: list[str] = []
		if self.filename:
			context.append(self.filename)
		if self.worklet:
			context.append(self.worklet)
		if context:
			return f"[worklets] {message} ({': '.join(context)})"
		return f"[worklets] {message}"


class PreconditionError(WorkletError):
	"""Required context (e.g. the originating filename) is missing."""


class SynthesisError(WorkletError):
	"""Standalone source could not be regenerated, lowered or re-parsed."""


class StructuralAssertionError(WorkletError):
	"""An internal invariant about a function's shape does not hold."""


def ensure(condition: object, message: str) -> None:
	"""Raise StructuralAssertionError unless `condition` is truthy.

	Unlike `assert`, this is not stripped under `python -O`.
	"""
	if not condition:
		fail(message)


def fail(message: str) -> NoReturn:
	raise StructuralAssertionError(message)
