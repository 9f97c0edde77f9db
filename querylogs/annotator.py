"""Attach a rendered comment to a SQL statement."""


def annotate(sql: str, comment: str, prepend: bool = False) -> str:
    """
    Join comment and statement with exactly one space.

    An empty comment returns `sql` unchanged.

    Example:
        >>> annotate("select id from posts", "/*application:billing*/")
        'select id from posts /*application:billing*/'
        >>> annotate("select id from posts", "/*application:billing*/", prepend=True)
        '/*application:billing*/ select id from posts'
    """
    if not comment:
        return sql
    if prepend:
        return f"{comment} {sql.lstrip()}"
    return f"{sql.rstrip()} {comment}"
