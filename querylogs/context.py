"""
Execution context - key/value state for the current unit of work.

Each request, job or task sees its own values: state is held in a ContextVar,
so threads and asyncio tasks never share it. Every mutation publishes a new
immutable snapshot with a new version number, taken from a process-wide
counter, which is what comment caches compare against.

Usage:
    context = ExecutionContext()
    context["request_id"] = "abc123"

    with context.scoped(user_id=42):
        ...  # user_id visible here, previous state restored on exit
"""

import itertools
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from threading import Lock
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, NamedTuple, Protocol

log = logging.getLogger(__name__)


# ============================================================================
# Versions
# ============================================================================

_version_counter = itertools.count(1)
_version_lock = Lock()


def _next_version() -> int:
    with _version_lock:
        return next(_version_counter)


# ============================================================================
# Interface
# ============================================================================

class ContextSource(Protocol):
    """What the comment renderer needs from an execution context."""

    def snapshot(self) -> Mapping[str, Any]:
        ...

    def version(self) -> int:
        ...


class _State(NamedTuple):
    values: Mapping[str, Any]
    version: int


_EMPTY_STATE = _State(MappingProxyType({}), 0)


# ============================================================================
# Execution Context
# ============================================================================

class ExecutionContext:
    """
    Per-unit-of-work key/value store with a change version.

    The snapshot returned by snapshot() is read-only and never changes;
    mutations replace it.
    """

    def __init__(self, name: str = "querylogs_execution_context"):
        self._state: ContextVar[_State] = ContextVar(name, default=_EMPTY_STATE)

    # -- reads ---------------------------------------------------------------

    def snapshot(self) -> Mapping[str, Any]:
        return self._state.get().values

    def version(self) -> int:
        return self._state.get().version

    def get(self, key: str, default: Any = None) -> Any:
        return self._state.get().values.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._state.get().values)

    def __getitem__(self, key: str) -> Any:
        return self._state.get().values[key]

    def __contains__(self, key: object) -> bool:
        return key in self._state.get().values

    def __len__(self) -> int:
        return len(self._state.get().values)

    # -- writes --------------------------------------------------------------

    def _publish(self, values: Mapping[str, Any]) -> None:
        self._state.set(_State(MappingProxyType(dict(values)), _next_version()))

    def update(self, **values: Any) -> None:
        """Set several keys at once (one version bump)."""
        if not values:
            return
        merged = dict(self._state.get().values)
        merged.update(values)
        self._publish(merged)

    def __setitem__(self, key: str, value: Any) -> None:
        self.update(**{key: value})

    def __delitem__(self, key: str) -> None:
        current = dict(self._state.get().values)
        del current[key]
        self._publish(current)

    @contextmanager
    def scoped(self, **values: Any) -> Iterator["ExecutionContext"]:
        """
        Temporarily set keys; their previous values are restored on exit.

        Only the given keys are restored (or removed if they were unset).
        Other keys written inside the block keep their values. Restoring is
        itself a change and gets a new version, so a comment cached inside
        the block is never served after it.
        """
        previous = self._state.get().values
        saved = {key: previous[key] for key in values if key in previous}
        absent = [key for key in values if key not in previous]
        self.update(**values)
        try:
            yield self
        finally:
            restored = dict(self._state.get().values)
            restored.update(saved)
            for key in absent:
                restored.pop(key, None)
            self._publish(restored)

    def clear(self) -> None:
        """Drop all keys for the current unit of work."""
        self._publish({})

    def __repr__(self):
        state = self._state.get()
        return f"ExecutionContext(values={dict(state.values)}, version={state.version})"


# Default context used by the default QueryLogs instance
_default_context = ExecutionContext()


def get_execution_context() -> ExecutionContext:
    """Get the process-wide default execution context."""
    return _default_context
