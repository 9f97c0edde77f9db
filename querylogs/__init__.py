"""
querylogs - SQL query comments carrying application context.

Attaches a comment such as /*application:billing,request_id:abc123*/ to
outgoing SQL so slow-query logs and APM traces can be tied back to the code
and request that issued each statement.

This package provides:
- A tag registry of static, computed and context-aware resolvers
- Two comment formats: legacy (key:value) and sqlcommenter (key='value')
- A per-context comment cache invalidated when the execution context changes
- A query transformer chain step and a DB-API connection wrapper
"""

from .annotator import annotate
from .cache import CommentCache
from .config import Format, QueryLogsConfig, get_config, reset_config, set_config
from .context import ContextSource, ExecutionContext, get_execution_context
from .dbapi import TransformingConnection, TransformingCursor
from .escaping import encode_value, escape_sql_comment
from .exceptions import InvalidTagError, QueryLogsError, UnknownFormatError
from .query_logs import QueryLogs, get_query_logs, reset_query_logs
from .renderer import render, render_entries
from .tags import Computed, Constant, Contextual, TagRegistry, to_resolver
from .transformers import QueryTransformers, get_query_transformers

__version__ = "0.1.0"

__all__ = [
    # Engine
    "QueryLogs",
    "get_query_logs",
    "reset_query_logs",
    # Configuration
    "QueryLogsConfig",
    "Format",
    "get_config",
    "set_config",
    "reset_config",
    # Tags
    "TagRegistry",
    "Constant",
    "Computed",
    "Contextual",
    "to_resolver",
    # Context
    "ExecutionContext",
    "ContextSource",
    "get_execution_context",
    # Rendering
    "render",
    "render_entries",
    "annotate",
    "escape_sql_comment",
    "encode_value",
    "CommentCache",
    # Integration
    "QueryTransformers",
    "get_query_transformers",
    "TransformingConnection",
    "TransformingCursor",
    # Errors
    "QueryLogsError",
    "InvalidTagError",
    "UnknownFormatError",
]
