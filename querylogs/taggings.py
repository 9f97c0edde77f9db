"""
Built-in taggings registered on TagRegistry(defaults=True).

- application: configured application name
- pid: current process id
- thread: current thread name
- db_host / database: from the connection passed with the query
- source_location: first caller frame outside querylogs
"""
import os
import sys
import threading
from typing import Any, Mapping, Optional

from .tags import Computed, Constant, Contextual

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


def _connection_attribute(context: Mapping[str, Any], name: str) -> Optional[Any]:
    connection = context.get("connection")
    if connection is None:
        return None
    return getattr(connection, name, None)


def db_host(context: Mapping[str, Any]) -> Optional[Any]:
    """Host of the connection the query runs on."""
    return _connection_attribute(context, "host")


def database(context: Mapping[str, Any]) -> Optional[Any]:
    """Database name of the connection the query runs on."""
    return _connection_attribute(context, "database")


def source_location() -> Optional[str]:
    """
    Location of the code that issued the query, as "file:line:function".

    Walks outward from the current frame and returns the first frame whose
    file is not part of the querylogs package.
    """
    frame = sys._getframe(1)
    while frame is not None:
        filename = os.path.abspath(frame.f_code.co_filename)
        if not filename.startswith(_PACKAGE_DIR + os.sep):
            return f"{frame.f_code.co_filename}:{frame.f_lineno}:{frame.f_code.co_name}"
        frame = frame.f_back
    return None


def register_default_taggings(registry, application: Any = None) -> None:
    """
    Register the built-in taggings on a registry.

    `application` may be a name or a zero-argument callable returning one.
    """
    if application is not None:
        registry.register("application", application if callable(application) else Constant(application))
    registry.register("pid", Computed(lambda: str(os.getpid())))
    registry.register("thread", Computed(lambda: threading.current_thread().name))
    registry.register("db_host", Contextual(db_host))
    registry.register("database", Contextual(database))
    registry.register("source_location", Computed(source_location))
