"""Port interfaces for envscope."""

from envscope.ports.providers import DetectOutcome, MonorepoProvider

__all__ = [
    "DetectOutcome",
    "MonorepoProvider",
]
