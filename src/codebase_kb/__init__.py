from importlib.metadata import version

try:
    __version__ = version("codebase-kb")
except Exception:
    __version__ = "unknown"
