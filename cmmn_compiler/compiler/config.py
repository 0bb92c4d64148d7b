"""
Compiler Configuration Schema

Defines layout selection, emitter defaults and feature flags for the
CMMN compiler pipeline.
"""

import os
from dataclasses import dataclass
from enum import Enum


class LayoutMode(str, Enum):
    """Diagram layout strategy."""

    ALTERNATING = "alternating"  # Two-row zig-zag placement (canonical)
    GRID = "grid"  # Square grid packing (simplified fallback)


@dataclass
class CompilerConfig:
    """Complete compiler configuration."""

    # Layout
    layout_mode: LayoutMode = LayoutMode.ALTERNATING

    # Plan items that are re-entered by a retry edge but declare no limit
    default_repetition_limit: int = 10

    # Human task defaults
    default_assignee: str = "${initiator}"

    # Output
    pretty_print: bool = True

    @classmethod
    def from_env(cls) -> "CompilerConfig":
        """Create compiler config from ``CMMN_*`` environment variables.

        Returns:
            CompilerConfig instance
        """
        try:
            layout_mode = LayoutMode(os.getenv("CMMN_LAYOUT_MODE", LayoutMode.ALTERNATING.value))
        except ValueError:
            layout_mode = LayoutMode.ALTERNATING

        return cls(
            layout_mode=layout_mode,
            default_repetition_limit=int(os.getenv("CMMN_DEFAULT_REPETITION_LIMIT", "10")),
            default_assignee=os.getenv("CMMN_DEFAULT_ASSIGNEE", "${initiator}"),
            pretty_print=os.getenv("CMMN_PRETTY_PRINT", "true").lower() in ("1", "true", "yes"),
        )
