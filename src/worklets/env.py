"""Environment switches for the worklet transform.

Values are read on every call rather than at import time: build tools and
test runners commonly set these variables after this module is imported.
"""

from __future__ import annotations

import os

ENV_WORKLETS_ENV = "WORKLETS_ENV"
ENV_PYTHON_ENV = "PYTHON_ENV"
ENV_WORKLETS_MOCK_VERSION = "WORKLETS_MOCK_VERSION"

RELEASE_ENVIRONMENTS = frozenset({"production", "release"})


def is_release() -> bool:
	value = os.environ.get(ENV_WORKLETS_ENV) or os.environ.get(ENV_PYTHON_ENV)
	return value in RELEASE_ENVIRONMENTS


def should_mock_version() -> bool:
	# Test fixtures must not change with every release of this package.
	return os.environ.get(ENV_WORKLETS_MOCK_VERSION) == "1"
