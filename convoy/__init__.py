"""Convoy: segment-following control for synchronized robot fleets."""

try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("convoy")
except Exception:
    __version__ = "2026.10.1"  # fallback

__all__ = ["__version__"]
