"""
Resolve module for the CMS replica - following links between entities.

Invariants:
    - Resolution is bounded by depth, never by graph shape
    - Memoized per top-level call, so shared targets share identity
"""

from .resolver import MAX_INCLUDE_DEPTH, LinkResolver

__all__ = ["LinkResolver", "MAX_INCLUDE_DEPTH"]
