"""
Escaping for content embedded in a /* ... */ SQL comment.

Two concerns:
- A tag value must never close the surrounding comment early. Anything after
  a premature "*/" would be executed as SQL.
- sqlcommenter values are percent-encoded before assembly.
"""

import re
from typing import Any
from urllib.parse import quote

# A leading "/*" or "/*+" (optional space after) and a trailing "*/" (optional
# space before), so already-wrapped content is not wrapped twice.
_WRAPPER_PATTERN = re.compile(r"\A\s*/\*\+?\s?|\s?\*/\s*\Z")


def encode_value(value: Any) -> str:
    """
    Percent-encode a tag value for the sqlcommenter format.

    Everything outside A-Z a-z 0-9 _ . - ~ is encoded, including
    "=", ",", "'", spaces and "/". Non-ASCII text is encoded as UTF-8.

    Example:
        >>> encode_value("Joe's Shack")
        'Joe%27s%20Shack'
    """
    return quote(str(value), safe="")


def escape_sql_comment(content: Any) -> str:
    """
    Make content safe to place between "/*" and "*/".

    Rewrites every "*/" to "* /" and every "/*" to "/ *" until neither
    sequence remains. Values are not percent-encoded here; sqlcommenter
    encoding is applied per value by encode_value() before assembly.

    Args:
        content: Text to escape (coerced with str())

    Returns:
        Escaped text without a surrounding comment wrapper

    Example:
        >>> escape_sql_comment("*/; DROP TABLE USERS;/*")
        '* /; DROP TABLE USERS;/ *'
    """
    comment = _WRAPPER_PATTERN.sub("", str(content))
    while "*/" in comment or "/*" in comment:
        comment = comment.replace("*/", "* /").replace("/*", "/ *")
    return comment
