"""
Single-slot cache for the rendered comment.

The slot remembers which context version and configuration generation the
comment was rendered for. A lookup with a different version or generation is
a miss. The slot itself lives in a ContextVar, so each unit of work has its
own and one unit's context changes never evict another's comment.
"""

import logging
from contextvars import ContextVar
from typing import Callable, Hashable, NamedTuple, Optional

log = logging.getLogger(__name__)


class CacheEntry(NamedTuple):
    comment: str
    context_version: int
    generation: Hashable


class CommentCache:
    """One cached comment per execution context."""

    def __init__(self, name: str = "querylogs_cached_comment"):
        self._slot: ContextVar[Optional[CacheEntry]] = ContextVar(name, default=None)
        self.hits = 0
        self.misses = 0

    def _is_valid(self, entry: Optional[CacheEntry], context_version: int, generation: Hashable) -> bool:
        return (
            entry is not None
            and entry.generation == generation
            and entry.context_version == context_version
        )

    def get(self, context_version: int, generation: Hashable) -> Optional[str]:
        """The cached comment if still valid, else None. Does not render."""
        entry = self._slot.get()
        if self._is_valid(entry, context_version, generation):
            return entry.comment
        return None

    def get_or_render(self, render: Callable[[], str], context_version: int, generation: Hashable) -> str:
        """
        Return the cached comment, rendering and storing it on a miss.

        The stored version is the one observed before rendering: if rendering
        itself changes the context, the next lookup misses.
        """
        entry = self._slot.get()
        if self._is_valid(entry, context_version, generation):
            self.hits += 1
            return entry.comment

        self.misses += 1
        comment = render()
        self._slot.set(CacheEntry(comment, context_version, generation))
        log.debug(f"[comment_cache] Stored comment for context version {context_version}")
        return comment

    def pin(self, comment: str, context_version: int, generation: Hashable) -> None:
        """Store `comment` as if it had been rendered for this version and generation."""
        self._slot.set(CacheEntry(comment, context_version, generation))

    def clear(self) -> None:
        self._slot.set(None)
