"""couponpilot — locate a checkout page's discount-code field and trial candidate codes against it."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("couponpilot")
except Exception:
    __version__ = "0.0.0"
