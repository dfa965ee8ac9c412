"""Site Dispatch: per-slot battery, load and PV control decisions."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("site-dispatch")
except Exception:
    __version__ = "0.0.0+local"
