__version__ = "0.3.1"

MOCK_VERSION = "x.y.z"
