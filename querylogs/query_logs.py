"""
QueryLogs - tags outgoing SQL with a comment describing where it came from.

A QueryLogs instance is one step of a query transformer chain: it takes the
SQL about to be sent to the database and returns it with the rendered
comment prepended or appended.

    query_logs = QueryLogs(QueryLogsConfig(tags=["application", "request_id"]))
    query_logs.registry.register("application", "billing")
    query_logs.context["request_id"] = "abc123"

    query_logs.call("SELECT 1")
    # 'SELECT 1 /*application:billing,request_id:abc123*/'

With `cache_query_log_tags` enabled the rendered comment is reused until the
execution context or the configuration changes.
"""

import logging
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any, Hashable, List, Optional, Tuple

from .annotator import annotate
from .cache import CommentCache
from .config import Format, QueryLogsConfig, get_config, parse_format
from .context import ContextSource, get_execution_context
from .escaping import escape_sql_comment
from .renderer import render_entries
from .tags import TagEntry, TagRegistry, normalize_tag_spec

log = logging.getLogger(__name__)


class QueryLogs:
    """Query comment engine: configuration + tag registry + context + cache."""

    def __init__(
        self,
        config: Optional[QueryLogsConfig] = None,
        registry: Optional[TagRegistry] = None,
        context: Optional[ContextSource] = None,
    ):
        self.config = config if config is not None else QueryLogsConfig()
        self.registry = (
            registry
            if registry is not None
            else TagRegistry(defaults=True, application=lambda: self.config.application)
        )
        self.context = context if context is not None else get_execution_context()
        self._cache = CommentCache()
        self._rendering: ContextVar[bool] = ContextVar("querylogs_rendering", default=False)
        self._entries: Optional[Tuple[Hashable, List[TagEntry]]] = None

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def tags(self) -> Tuple[Any, ...]:
        return self.config.tags

    @tags.setter
    def tags(self, value: List[Any]) -> None:
        self.config.tags = value

    @property
    def taggings(self) -> TagRegistry:
        """Alias for the tag registry."""
        return self.registry

    @property
    def prepend_comment(self) -> bool:
        return self.config.prepend_comment

    @prepend_comment.setter
    def prepend_comment(self, value: bool) -> None:
        self.config.prepend_comment = value

    @property
    def cache_query_log_tags(self) -> bool:
        return self.config.cache_query_log_tags

    @cache_query_log_tags.setter
    def cache_query_log_tags(self, value: bool) -> None:
        self.config.cache_query_log_tags = value

    @property
    def format(self) -> Format:
        return self.config.format

    def update_formatter(self, name: Any) -> None:
        """
        Switch the comment format.

        Raises:
            UnknownFormatError: name is not "legacy" or "sqlcommenter"
        """
        self.config.format = parse_format(name)
        log.debug(f"[query_logs] Format set to {self.config.format.value}")

    @property
    def generation(self) -> Hashable:
        """Identity of the current configuration and registry state."""
        return (
            id(self.config),
            self.config.generation,
            id(self.registry),
            self.registry.generation,
        )

    # =========================================================================
    # Cache
    # =========================================================================

    @property
    def cached_comment(self) -> Optional[str]:
        """The cached comment for the current context, or None if there is no valid one."""
        return self._cache.get(self.context.version(), self.generation)

    @cached_comment.setter
    def cached_comment(self, comment: Optional[str]) -> None:
        # Served until the context or configuration next changes
        if comment is None:
            self._cache.clear()
        else:
            self._cache.pin(comment, self.context.version(), self.generation)

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_stats(self) -> dict:
        return {"hits": self._cache.hits, "misses": self._cache.misses}

    # =========================================================================
    # Rendering
    # =========================================================================

    def tag_entries(self) -> List[TagEntry]:
        """
        The configured tags converted to resolvers.

        Converted once per configuration generation rather than on every query.
        """
        key = (id(self.config), self.config.generation)
        cached = self._entries
        if cached is None or cached[0] != key:
            cached = (key, normalize_tag_spec(self.config.tags))
            self._entries = cached
            log.debug(f"[query_logs] Normalized {len(cached[1])} tag entries")
        return cached[1]

    def escape_sql_comment(self, content: Any) -> str:
        return escape_sql_comment(content)

    def uncached_comment(self, connection: Any = None) -> str:
        """Render the comment from scratch, ignoring the cache."""
        snapshot = self.context.snapshot()
        if connection is not None:
            snapshot = MappingProxyType({**snapshot, "connection": connection})

        token = self._rendering.set(True)
        try:
            return render_entries(
                self.tag_entries(),
                self.config.format,
                snapshot,
                registry=self.registry,
                context_fallback=self.config.context_fallback,
            )
        finally:
            self._rendering.reset(token)

    def comment(self, connection: Any = None) -> str:
        """
        The comment for the next query: cached when caching is enabled and
        still valid, rendered otherwise.

        Calls made while this instance is already rendering in the same
        context (a resolver that runs a query) get no comment.
        """
        if self._rendering.get():
            log.debug("[query_logs] Nested render skipped while resolving tags")
            return ""

        if not self.config.cache_query_log_tags:
            return self.uncached_comment(connection)

        return self._cache.get_or_render(
            lambda: self.uncached_comment(connection),
            self.context.version(),
            self.generation,
        )

    def call(self, sql: str, connection: Any = None) -> str:
        """Annotate one SQL statement."""
        return annotate(sql, self.comment(connection), prepend=self.config.prepend_comment)

    def __call__(self, sql: str, connection: Any = None) -> str:
        return self.call(sql, connection)

    # =========================================================================
    # Transformer Chain
    # =========================================================================

    def install(self, transformers) -> None:
        """Append this instance to a query transformer chain (once)."""
        if self not in transformers:
            transformers.append(self)

    def uninstall(self, transformers) -> None:
        transformers.remove(self)

    def __repr__(self):
        return (
            f"QueryLogs(format={self.config.format.value}, tags={self.config.tags!r}, "
            f"prepend={self.config.prepend_comment}, cache={self.config.cache_query_log_tags})"
        )


# Global instance bound to the global configuration and execution context
_query_logs: Optional[QueryLogs] = None


def get_query_logs() -> QueryLogs:
    """Get the process-wide QueryLogs instance."""
    global _query_logs
    if _query_logs is None:
        _query_logs = QueryLogs(get_config(), context=get_execution_context())
    return _query_logs


def reset_query_logs() -> None:
    """Drop the process-wide instance (its registry included)."""
    global _query_logs
    _query_logs = None
