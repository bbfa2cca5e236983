"""
Model runtimes for wiring_kit.

Backends are imported lazily by `wiring_kit.runtime.load_engine` so the
pre/post-processing code can be used without installing an inference runtime.
"""

from __future__ import annotations

__all__ = []
