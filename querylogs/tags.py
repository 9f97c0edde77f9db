"""
Tag registry - named resolvers for query log tags.

A resolver produces one tag value at render time. Three shapes:
- Constant: a fixed value
- Computed: a zero-argument callable
- Contextual: a callable receiving the execution context snapshot

Raw values handed to the registry (or written inline in a tag spec) are
converted to one of these shapes once, when configured. Rendering dispatches
on the shape, never on callable arity.
"""

import inspect
import logging
from dataclasses import dataclass
from threading import Lock
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .exceptions import InvalidTagError

log = logging.getLogger(__name__)


# ============================================================================
# Resolver Shapes
# ============================================================================

@dataclass(frozen=True)
class Constant:
    """A fixed tag value."""
    value: Any


@dataclass(frozen=True)
class Computed:
    """A tag value computed by a zero-argument callable."""
    func: Callable[[], Any]


@dataclass(frozen=True)
class Contextual:
    """A tag value computed from the execution context snapshot."""
    func: Callable[[Mapping[str, Any]], Any]


Resolver = Union[Constant, Computed, Contextual]

RESOLVER_TYPES = (Constant, Computed, Contextual)


def _required_positional_count(func: Callable) -> Optional[int]:
    """Number of required positional parameters, or None if not introspectable."""
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return None

    count = 0
    for param in sig.parameters.values():
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD) and param.default is param.empty:
            count += 1
        elif param.kind is param.VAR_POSITIONAL:
            # fn(*args) accepts the context
            return max(count, 1)
    return count


def to_resolver(value: Any) -> Resolver:
    """
    Convert a raw tag value into a resolver shape.

    - Resolver instances are returned unchanged
    - Callables with no required positional parameters become Computed
    - Callables with exactly one become Contextual
    - Everything else becomes Constant

    Raises:
        InvalidTagError: callable requiring more than one argument
    """
    if isinstance(value, RESOLVER_TYPES):
        return value
    if not callable(value):
        return Constant(value)

    required = _required_positional_count(value)
    if required is None or required == 0:
        return Computed(value)
    if required == 1:
        return Contextual(value)
    raise InvalidTagError(
        f"Tag resolver {value!r} takes {required} arguments; expected none or the context"
    )


# ============================================================================
# Tag Spec Normalization
# ============================================================================

# Normalized entry: (label, resolver) for inline values, (name, None) for references
TagEntry = Tuple[str, Optional[Resolver]]


def normalize_tag_spec(tags: Iterable[Any]) -> List[TagEntry]:
    """
    Flatten a tag spec into ordered (label, resolver-or-None) entries.

    Accepted entries:
        "application"                      -> named reference
        {"custom": "value", "n": fn}       -> label block (order preserved)
        ("custom", "value")                -> single-label block

    Raises:
        InvalidTagError: entry of any other type
    """
    entries: List[TagEntry] = []
    for entry in tags or ():
        if isinstance(entry, str):
            entries.append((entry, None))
        elif isinstance(entry, Mapping):
            for label, value in entry.items():
                entries.append((str(label), to_resolver(value)))
        elif isinstance(entry, tuple) and len(entry) == 2:
            label, value = entry
            entries.append((str(label), to_resolver(value)))
        else:
            raise InvalidTagError(
                f"Invalid tag spec entry {entry!r}: expected a tag name or a {{label: value}} block"
            )
    return entries


# ============================================================================
# Registry
# ============================================================================

class TagRegistry:
    """
    Process-wide mapping from tag name to resolver.

    Writes are serialized by a lock and publish a fresh read-only mapping,
    so readers never take the lock. Every write bumps `generation`.
    """

    def __init__(self, defaults: bool = False, application: Any = None):
        self._lock = Lock()
        self._resolvers: Mapping[str, Resolver] = MappingProxyType({})
        self._generation = 0

        if defaults:
            from .taggings import register_default_taggings
            register_default_taggings(self, application=application)

    @property
    def generation(self) -> int:
        """Counter bumped on every register/unregister."""
        return self._generation

    def register(self, name: str, resolver: Any) -> Resolver:
        """Register (or replace) the resolver for a tag name."""
        resolved = to_resolver(resolver)
        with self._lock:
            updated: Dict[str, Resolver] = dict(self._resolvers)
            updated[str(name)] = resolved
            self._resolvers = MappingProxyType(updated)
            self._generation += 1
        log.debug(f"[tag_registry] Registered {name}: {type(resolved).__name__}")
        return resolved

    def unregister(self, name: str) -> None:
        with self._lock:
            if name not in self._resolvers:
                return
            updated = dict(self._resolvers)
            updated.pop(name)
            self._resolvers = MappingProxyType(updated)
            self._generation += 1
        log.debug(f"[tag_registry] Unregistered {name}")

    def get(self, name: str) -> Optional[Resolver]:
        return self._resolvers.get(name)

    def names(self) -> List[str]:
        return list(self._resolvers.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._resolvers

    def __len__(self) -> int:
        return len(self._resolvers)

    def __setitem__(self, name: str, resolver: Any) -> None:
        self.register(name, resolver)

    def __getitem__(self, name: str) -> Resolver:
        return self._resolvers[name]

    def resolve(self, entry: Union[str, TagEntry], context: Mapping[str, Any]) -> Any:
        """
        Resolve one tag spec entry to its raw value.

        A name unknown to the registry yields None. Resolver exceptions
        propagate to the caller.
        """
        if isinstance(entry, str):
            label, resolver = entry, None
        else:
            label, resolver = entry

        if resolver is None:
            resolver = self._resolvers.get(label)
            if resolver is None:
                return None

        if isinstance(resolver, Constant):
            return resolver.value
        if isinstance(resolver, Computed):
            return resolver.func()
        if isinstance(resolver, Contextual):
            return resolver.func(context)
        raise InvalidTagError(f"Unsupported resolver for tag {label!r}: {resolver!r}")

    def __repr__(self):
        return f"TagRegistry(tags={sorted(self._resolvers)}, generation={self._generation})"
