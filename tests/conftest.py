"""
Shared fixtures for querylogs tests.

Every test gets its own configuration, registry and execution context, so no
test depends on process-wide state left behind by another.
"""
import pytest

from querylogs import ExecutionContext, QueryLogs, QueryLogsConfig, TagRegistry
from querylogs.config import reset_config
from querylogs.query_logs import reset_query_logs

_ENV_VARS = (
    "QUERYLOGS_FORMAT",
    "QUERYLOGS_TAGS",
    "QUERYLOGS_PREPEND_COMMENT",
    "QUERYLOGS_CACHE_QUERY_LOG_TAGS",
    "QUERYLOGS_APPLICATION",
    "QUERYLOGS_CONTEXT_FALLBACK",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    # Make configuration defaults deterministic regardless of the shell
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    reset_query_logs()
    yield
    reset_config()
    reset_query_logs()


@pytest.fixture
def context():
    return ExecutionContext()


@pytest.fixture
def registry():
    reg = TagRegistry()
    reg.register("application", lambda: "active_record")
    return reg


@pytest.fixture
def config():
    return QueryLogsConfig(
        format="legacy",
        tags=["application"],
        prepend_comment=False,
        cache_query_log_tags=False,
    )


@pytest.fixture
def query_logs(config, registry, context):
    return QueryLogs(config, registry=registry, context=context)
