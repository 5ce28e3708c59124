"""
Kanjou - offline-first emotional diary sync.

Local diary storage reconciled with a Supabase backend.
"""

from .core import Kanjou

try:
    from importlib.metadata import version

    __version__ = version("kanjou")
except Exception:
    __version__ = "0.0.0"

__all__ = ["Kanjou"]
