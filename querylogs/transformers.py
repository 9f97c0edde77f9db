"""
Query transformer chain.

An ordered list of steps, each `step(sql, connection) -> sql`, applied to every
statement right before it reaches the driver. QueryLogs is one such step;
others (rewriters, hint injectors) can sit before or after it.

Processing order is the list order. A step that raises stops the chain and
the exception reaches the caller.
"""

import logging
from threading import Lock
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple

log = logging.getLogger(__name__)

QueryTransformer = Callable[[str, Any], str]


class QueryTransformers:
    """
    Copy-on-write chain of query transformers.

    Mutations replace the internal tuple under a lock; apply() iterates over
    whatever tuple it saw first, so a concurrent append never affects a
    statement already being transformed.
    """

    def __init__(self, transformers: Optional[Iterable[QueryTransformer]] = None):
        self._lock = Lock()
        self._steps: Tuple[QueryTransformer, ...] = tuple(transformers or ())

    def append(self, transformer: QueryTransformer) -> None:
        with self._lock:
            self._steps = self._steps + (transformer,)
        log.debug(f"[transformers] Appended {transformer!r} ({len(self._steps)} steps)")

    def extend(self, transformers: Iterable[QueryTransformer]) -> None:
        with self._lock:
            self._steps = self._steps + tuple(transformers)

    def remove(self, transformer: QueryTransformer) -> None:
        with self._lock:
            steps = list(self._steps)
            steps.remove(transformer)
            self._steps = tuple(steps)

    def clear(self) -> None:
        with self._lock:
            self._steps = ()

    def __iadd__(self, transformers: Iterable[QueryTransformer]) -> "QueryTransformers":
        self.extend(transformers)
        return self

    def __iter__(self) -> Iterator[QueryTransformer]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, transformer: object) -> bool:
        return transformer in self._steps

    def to_list(self) -> List[QueryTransformer]:
        return list(self._steps)

    def apply(self, sql: str, connection: Any = None) -> str:
        """Run `sql` through every step in order."""
        for step in self._steps:
            sql = step(sql, connection)
        return sql

    def __call__(self, sql: str, connection: Any = None) -> str:
        return self.apply(sql, connection)

    def __repr__(self):
        return f"QueryTransformers({list(self._steps)!r})"


# Process-wide chain used by TransformingConnection when none is given
_query_transformers = QueryTransformers()


def get_query_transformers() -> QueryTransformers:
    """Get the process-wide query transformer chain."""
    return _query_transformers
