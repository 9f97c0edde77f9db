"""
Comment renderer - turns a tag spec into a /* ... */ SQL comment.

Formats:
- legacy:       /*application:billing,request_id:abc*/   (configured order)
- sqlcommenter: /*application='billing',request_id='abc'*/ (sorted by key,
  values percent-encoded)

Tags whose value is None or "" are left out. When nothing is left the
comment is the empty string.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .config import Format, parse_format
from .escaping import encode_value, escape_sql_comment
from .tags import TagEntry, TagRegistry, normalize_tag_spec

log = logging.getLogger(__name__)

# Used when no registry is given: only inline label blocks resolve
_EMPTY_REGISTRY = TagRegistry()


def resolve_pairs(
    entries: Iterable[TagEntry],
    context: Mapping[str, Any],
    registry: Optional[TagRegistry] = None,
    context_fallback: bool = True,
) -> List[Tuple[str, str]]:
    """
    Resolve normalized tag entries into ordered (label, value) string pairs.

    Named tags unknown to the registry are read from the context when
    `context_fallback` is set. Empty and None values are dropped.
    """
    registry = registry if registry is not None else _EMPTY_REGISTRY
    pairs: List[Tuple[str, str]] = []

    for label, resolver in entries:
        if resolver is None and label not in registry:
            value = context.get(label) if context_fallback else None
        else:
            value = registry.resolve((label, resolver), context)

        if value is None:
            continue
        value = value if isinstance(value, str) else str(value)
        if value == "":
            continue
        pairs.append((label, value))

    return pairs


def format_pairs(pairs: List[Tuple[str, str]], format: Format) -> str:
    """Serialize resolved pairs without the surrounding comment markers."""
    if parse_format(format) is Format.SQLCOMMENTER:
        ordered = sorted(pairs, key=lambda pair: pair[0])
        return ",".join(f"{key}='{encode_value(value)}'" for key, value in ordered)
    return ",".join(f"{key}:{value}" for key, value in pairs)


def render(
    tags: Iterable[Any],
    format: Format,
    context: Mapping[str, Any],
    registry: Optional[TagRegistry] = None,
    context_fallback: bool = True,
) -> str:
    """
    Render the SQL comment for a tag spec.

    Args:
        tags: Ordered tag spec (names and {label: value} blocks)
        format: Format.LEGACY or Format.SQLCOMMENTER (or their names)
        context: Execution context snapshot passed to contextual resolvers
        registry: Registry for named tags
        context_fallback: Read unknown named tags from the context

    Returns:
        "/*...*/" or "" when no tag produced a value

    Example:
        >>> render([{"custom_string": "test content"}], Format.LEGACY, {})
        '/*custom_string:test content*/'
    """
    return render_entries(
        normalize_tag_spec(tags), format, context, registry=registry, context_fallback=context_fallback
    )


def render_entries(
    entries: Iterable[TagEntry],
    format: Format,
    context: Mapping[str, Any],
    registry: Optional[TagRegistry] = None,
    context_fallback: bool = True,
) -> str:
    """Render the SQL comment for tag entries already passed through normalize_tag_spec()."""
    pairs = resolve_pairs(entries, context, registry=registry, context_fallback=context_fallback)
    if not pairs:
        return ""

    content = escape_sql_comment(format_pairs(pairs, format))
    if not content:
        return ""
    return f"/*{content}*/"
