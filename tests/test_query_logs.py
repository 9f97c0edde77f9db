"""
Tests for the QueryLogs engine.

Exercises the full path: configuration -> tag resolution -> cache ->
annotation, plus transformer chain installation and the global instance.
"""

import inspect
import threading
from types import SimpleNamespace

import pytest

from querylogs import (
    Format,
    QueryLogs,
    QueryLogsConfig,
    QueryTransformers,
    UnknownFormatError,
    get_config,
    get_query_logs,
)
from querylogs.tags import Constant


class _Counter:
    """Zero-argument resolver that counts its calls."""

    def __init__(self, value="counted"):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


# ============================================================================
# Annotation
# ============================================================================

class TestAnnotation:
    """Comments attached to statements."""

    def test_basic_commenting(self, query_logs):
        assert query_logs.call("select id from posts") == "select id from posts /*application:active_record*/"

    def test_callable_instance(self, query_logs):
        assert query_logs("select id from posts") == query_logs.call("select id from posts")

    def test_add_comments_to_beginning_of_query(self, query_logs):
        query_logs.prepend_comment = True
        assert query_logs.call("select id from posts") == "/*application:active_record*/ select id from posts"

    def test_empty_comments_are_not_added(self, query_logs):
        query_logs.tags = [{"empty": lambda: None}]
        assert query_logs.call("select id from posts") == "select id from posts"

    def test_empty_tag_spec(self, query_logs):
        query_logs.tags = []
        assert query_logs.call("select id from posts") == "select id from posts"

    def test_custom_tags(self, query_logs):
        query_logs.tags = ["application", {"custom_string": "test content", "custom_proc": lambda: "x"}]
        assert query_logs.call("select 1") == "select 1 /*application:active_record,custom_string:test content,custom_proc:x*/"

    def test_invalid_bytes_in_sql_pass_through(self, query_logs):
        """Rendering never inspects the statement itself."""
        sql = "select 1 where name = '\udcff'"
        assert query_logs.call(sql) == sql + " /*application:active_record*/"

    def test_escape_sql_comment(self, query_logs):
        assert query_logs.escape_sql_comment("*/; DROP TABLE USERS;/*") == "* /; DROP TABLE USERS;/ *"

    def test_resolver_error_propagates(self, query_logs):
        def broken():
            raise RuntimeError("boom")

        query_logs.tags = ["application", {"broken": broken}]
        with pytest.raises(RuntimeError, match="boom"):
            query_logs.call("select 1")


# ============================================================================
# Formats
# ============================================================================

class TestFormats:
    """Switching between legacy and sqlcommenter."""

    def test_sqlcommenter_format(self, query_logs):
        query_logs.update_formatter("sqlcommenter")
        assert query_logs.format is Format.SQLCOMMENTER
        assert query_logs.call("select id from posts") == "select id from posts /*application='active_record'*/"

    def test_sqlcommenter_format_value(self, query_logs):
        query_logs.update_formatter("sqlcommenter")
        query_logs.tags = [
            "application",
            {"tracestate": "congo=t61rcWkgMzE,rojo=00f067aa0ba902b7", "custom_proc": lambda: "Joe's Shack"},
        ]
        assert query_logs.call("select id from posts") == (
            "select id from posts /*application='active_record',"
            "custom_proc='Joe%27s%20Shack',"
            "tracestate='congo%3Dt61rcWkgMzE%2Crojo%3D00f067aa0ba902b7'*/"
        )

    def test_sqlcommenter_integer_value(self, query_logs):
        query_logs.update_formatter("sqlcommenter")
        query_logs.tags = ["application", {"custom_proc": lambda: 1234}]
        assert query_logs.call("select 1") == "select 1 /*application='active_record',custom_proc='1234'*/"

    def test_back_to_legacy(self, query_logs):
        query_logs.update_formatter("sqlcommenter")
        query_logs.update_formatter("legacy")
        assert query_logs.call("select 1") == "select 1 /*application:active_record*/"

    def test_unknown_format(self, query_logs):
        with pytest.raises(UnknownFormatError, match="bogus"):
            query_logs.update_formatter("bogus")
        assert query_logs.format is Format.LEGACY


# ============================================================================
# Context
# ============================================================================

class TestContextTags:
    """Tags read from the execution context."""

    def test_default_tag_behavior(self, query_logs, context):
        query_logs.tags = ["application", "foo"]
        with context.scoped(foo="bar"):
            assert query_logs.call("select 1") == "select 1 /*application:active_record,foo:bar*/"
        assert query_logs.call("select 1") == "select 1 /*application:active_record*/"

    def test_custom_context_proc(self, query_logs, context):
        query_logs.tags = ["application", {"custom_context_proc": lambda ctx: ctx.get("foo")}]
        context["foo"] = "bar"
        assert query_logs.call("select 1") == "select 1 /*application:active_record,custom_context_proc:bar*/"

    def test_context_fallback_disabled(self, query_logs, context):
        query_logs.config.context_fallback = False
        query_logs.tags = ["application", "foo"]
        context["foo"] = "bar"
        assert query_logs.call("select 1") == "select 1 /*application:active_record*/"

    def test_connection_passed_to_resolvers(self, config, context):
        config.application = "billing"
        config.tags = ["application", "db_host", "database"]
        query_logs = QueryLogs(config, context=context)
        connection = SimpleNamespace(host="db1", database="main")
        assert query_logs.call("select 1", connection) == "select 1 /*application:billing,db_host:db1,database:main*/"

    def test_connection_not_left_in_context(self, query_logs, context):
        query_logs.call("select 1", SimpleNamespace(database="main"))
        assert "connection" not in context

    def test_source_location(self, config, context):
        config.tags = ["source_location"]
        query_logs = QueryLogs(config, context=context)
        result = query_logs.call("select 1")
        assert __file__ in result
        assert result.endswith(":test_source_location*/")


# ============================================================================
# Cache
# ============================================================================

class TestCache:
    """Comment caching keyed on context version and configuration."""

    def test_cache_does_not_read_by_default(self, query_logs):
        counter = _Counter()
        query_logs.tags = [{"counter": counter}]
        query_logs.call("select 1")
        query_logs.call("select 1")
        assert counter.calls == 2

    def test_cache_renders_once_for_unchanged_context(self, query_logs):
        counter = _Counter()
        query_logs.tags = [{"counter": counter}]
        query_logs.cache_query_log_tags = True
        first = query_logs.comment()
        second = query_logs.comment()
        assert second is first
        assert counter.calls == 1
        assert query_logs.cache_stats == {"hits": 1, "misses": 1}

    def test_retrieves_comment_from_cache_when_enabled_and_set(self, query_logs):
        query_logs.cache_query_log_tags = True
        query_logs.cached_comment = "/*cached_comment*/"
        assert query_logs.call("select id from posts") == "select id from posts /*cached_comment*/"

    def test_pinned_comment_ignored_when_cache_disabled(self, query_logs):
        query_logs.cached_comment = "/*cached_comment*/"
        assert query_logs.call("select 1") == "select 1 /*application:active_record*/"

    def test_resets_cache_on_context_update(self, query_logs, context):
        query_logs.cache_query_log_tags = True
        query_logs.cached_comment = "/*cached_comment*/"
        context["temporary"] = "value"
        assert query_logs.cached_comment is None

    def test_cached_comment_none_clears(self, query_logs):
        query_logs.cache_query_log_tags = True
        query_logs.call("select 1")
        assert query_logs.cached_comment == "/*application:active_record*/"
        query_logs.cached_comment = None
        assert query_logs.cached_comment is None

    def test_context_change_rerenders(self, query_logs, context):
        query_logs.cache_query_log_tags = True
        query_logs.tags = ["application", "foo"]
        context["foo"] = "bar"
        assert query_logs.call("select 1") == "select 1 /*application:active_record,foo:bar*/"
        context["foo"] = "baz"
        assert query_logs.call("select 1") == "select 1 /*application:active_record,foo:baz*/"

    def test_scoped_exit_invalidates(self, query_logs, context):
        query_logs.cache_query_log_tags = True
        query_logs.tags = ["application", "foo"]
        with context.scoped(foo="bar"):
            assert "foo:bar" in query_logs.call("select 1")
        assert query_logs.call("select 1") == "select 1 /*application:active_record*/"

    def test_tags_change_invalidates(self, query_logs):
        query_logs.cache_query_log_tags = True
        query_logs.call("select 1")
        query_logs.tags = [{"team": "billing"}]
        assert query_logs.call("select 1") == "select 1 /*team:billing*/"

    def test_format_change_invalidates(self, query_logs):
        query_logs.cache_query_log_tags = True
        query_logs.call("select 1")
        query_logs.update_formatter("sqlcommenter")
        assert query_logs.call("select 1") == "select 1 /*application='active_record'*/"

    def test_registry_change_invalidates(self, query_logs):
        query_logs.cache_query_log_tags = True
        query_logs.call("select 1")
        query_logs.registry.register("application", "billing")
        assert query_logs.call("select 1") == "select 1 /*application:billing*/"

    def test_clear_cache(self, query_logs):
        counter = _Counter()
        query_logs.tags = [{"counter": counter}]
        query_logs.cache_query_log_tags = True
        query_logs.call("select 1")
        query_logs.clear_cache()
        query_logs.call("select 1")
        assert counter.calls == 2

    def test_context_mutated_during_render(self, query_logs, context):
        """A resolver that changes the context forces the next call to re-render."""
        calls = []

        def touching(ctx):
            calls.append(1)
            context["touched"] = len(calls)
            return "x"

        query_logs.cache_query_log_tags = True
        query_logs.tags = [{"touching": touching}]
        query_logs.call("select 1")
        query_logs.call("select 1")
        assert len(calls) == 2

    def test_threads_keep_separate_caches(self, query_logs, context):
        query_logs.cache_query_log_tags = True
        query_logs.tags = ["application", "request_id"]
        context["request_id"] = "main"
        main_comment = query_logs.comment()
        seen = {}

        def worker():
            context["request_id"] = "worker"
            seen["comment"] = query_logs.comment()

        t = threading.Thread(target=worker)
        t.start()
        t.join()

        assert seen["comment"] == "/*application:active_record,request_id:worker*/"
        assert query_logs.comment() is main_comment


# ============================================================================
# Tag Conversion
# ============================================================================

class TestTagConversion:
    """Resolvers are built when tags are configured, not per query."""

    def test_resolvers_converted_once_per_configuration(self, query_logs, monkeypatch):
        query_logs.tags = [{"custom": lambda: "x"}]
        query_logs.call("select 1")

        calls = []
        real_signature = inspect.signature

        def counting_signature(*args, **kwargs):
            calls.append(args)
            return real_signature(*args, **kwargs)

        monkeypatch.setattr(inspect, "signature", counting_signature)
        for _ in range(3):
            assert query_logs.call("select 1") == "select 1 /*custom:x*/"
        assert calls == []

    def test_entries_reused_until_reassigned(self, query_logs):
        first = query_logs.tag_entries()
        assert query_logs.tag_entries() is first
        query_logs.tags = [{"team": "billing"}]
        assert query_logs.tag_entries() == [("team", Constant("billing"))]

    def test_tags_cannot_change_in_place(self, query_logs):
        """Only assignment changes tags, so the cache always sees the change."""
        assert query_logs.tags == ("application",)
        with pytest.raises(AttributeError):
            query_logs.tags.append("pid")


# ============================================================================
# Re-entrancy
# ============================================================================

class TestNestedRender:
    """A resolver issuing its own query does not recurse into rendering."""

    def test_nested_call_is_not_annotated(self, query_logs):
        nested = []

        def issues_query():
            nested.append(query_logs.call("select 2"))
            return "outer"

        query_logs.tags = ["application", {"lookup": issues_query}]
        assert query_logs.call("select 1") == "select 1 /*application:active_record,lookup:outer*/"
        assert nested == ["select 2"]

    def test_nested_call_with_cache(self, query_logs):
        nested = []

        def issues_query():
            nested.append(query_logs.comment())
            return "outer"

        query_logs.cache_query_log_tags = True
        query_logs.tags = [{"lookup": issues_query}]
        assert query_logs.comment() == "/*lookup:outer*/"
        assert query_logs.comment() == "/*lookup:outer*/"
        assert nested == [""]


# ============================================================================
# Transformer Chain
# ============================================================================

class TestInstall:
    """Tests for QueryLogs.install() and uninstall()."""

    def test_install_once(self, query_logs):
        chain = QueryTransformers()
        query_logs.install(chain)
        query_logs.install(chain)
        assert len(chain) == 1
        assert chain.apply("select 1") == "select 1 /*application:active_record*/"

    def test_runs_after_earlier_steps(self, query_logs):
        chain = QueryTransformers([lambda sql, conn: sql.upper()])
        query_logs.install(chain)
        assert chain.apply("select 1") == "SELECT 1 /*application:active_record*/"

    def test_uninstall(self, query_logs):
        chain = QueryTransformers()
        query_logs.install(chain)
        query_logs.uninstall(chain)
        assert chain.apply("select 1") == "select 1"


# ============================================================================
# Global Instance
# ============================================================================

class TestGlobalInstance:
    """Tests for get_query_logs()."""

    def test_singleton(self):
        assert get_query_logs() is get_query_logs()
        assert get_query_logs().config is get_config()

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("QUERYLOGS_APPLICATION", "billing")
        monkeypatch.setenv("QUERYLOGS_TAGS", "application,pid")
        monkeypatch.setenv("QUERYLOGS_FORMAT", "sqlcommenter")
        result = get_query_logs().call("select 1")
        assert result.startswith("select 1 /*application='billing',pid='")

    def test_application_follows_config(self):
        query_logs = QueryLogs(QueryLogsConfig(tags=["application"], application="billing"))
        query_logs.config.application = "payments"
        assert query_logs.call("select 1") == "select 1 /*application:payments*/"

    def test_repr(self, query_logs):
        assert "format=legacy" in repr(query_logs)
