import pytest
from worklets.env import ENV_PYTHON_ENV, ENV_WORKLETS_ENV, ENV_WORKLETS_MOCK_VERSION


@pytest.fixture(autouse=True)
def _development_environment(monkeypatch: pytest.MonkeyPatch):  # pyright: ignore[reportUnusedFunction]
	for name in (ENV_WORKLETS_ENV, ENV_PYTHON_ENV, ENV_WORKLETS_MOCK_VERSION):
		monkeypatch.delenv(name, raising=False)
