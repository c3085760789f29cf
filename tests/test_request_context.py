"""
Tests for correlation id propagation through contextvars.
"""
import asyncio
import contextvars
import uuid

from src.common import UUIDProvider, bind_request_id, get_request_id, reset_request_id
from src.common import request_context
from tests.helpers import records


class TestGetRequestID:

    def test_untouched_context_is_empty(self):
        assert get_request_id(contextvars.copy_context()) == ""
        assert get_request_id() == ""

    def test_derived_context_matches_logger_attribute(self, make_logger, stream):
        ctx, log = make_logger().with_request_id()
        log.info("received")

        (record,) = records(stream)
        assert get_request_id(ctx) == "req-1"
        assert log.attributes["request_id"] == "req-1"
        assert record["request_id"] == "req-1"

    def test_running_context_is_not_mutated(self, make_logger):
        ctx, _ = make_logger().with_request_id()

        assert get_request_id(ctx) == "req-1"
        assert get_request_id() == ""

    def test_source_context_is_not_mutated(self, make_logger):
        base = make_logger()
        outer, _ = base.with_request_id()
        inner, _ = base.with_request_id(outer)

        assert get_request_id(outer) == "req-1"
        assert get_request_id(inner) == "req-2"

    def test_receiver_is_not_mutated(self, make_logger):
        base = make_logger().with_component("uploader")
        base.with_request_id()

        assert "request_id" not in base.attributes

    def test_unexpected_value_type_degrades_to_empty(self):
        ctx = contextvars.copy_context()
        ctx.run(request_context._request_id.set, 42)

        assert get_request_id(ctx) == ""
        assert ctx.run(get_request_id) == ""

    def test_code_run_in_derived_context_sees_id(self, make_logger):
        ctx, _ = make_logger().with_request_id()

        assert ctx.run(get_request_id) == "req-1"

    def test_same_named_string_key_does_not_collide(self):
        foreign = contextvars.ContextVar("request_id")
        ctx = contextvars.copy_context()
        ctx.run(foreign.set, "not-ours")

        assert get_request_id(ctx) == ""


class TestBindRequestID:

    def test_bind_and_reset(self):
        token = bind_request_id("abc")
        try:
            assert get_request_id() == "abc"
        finally:
            reset_request_id(token)

        assert get_request_id() == ""

    def test_tasks_inherit_bound_id(self):
        async def handler():
            return get_request_id()

        async def ingress():
            token = bind_request_id("task-id")
            try:
                return await asyncio.create_task(handler())
            finally:
                reset_request_id(token)

        assert asyncio.run(ingress()) == "task-id"

    def test_concurrent_tasks_are_isolated(self, make_logger):
        base = make_logger()

        async def request():
            ctx, log = base.with_request_id()
            token = bind_request_id(get_request_id(ctx))
            try:
                await asyncio.sleep(0)
                return get_request_id(), log.attributes["request_id"]
            finally:
                reset_request_id(token)

        async def main():
            return await asyncio.gather(*(request() for _ in range(5)))

        for seen, bound in asyncio.run(main()):
            assert seen == bound


class TestUUIDProvider:

    def test_ids_are_unique_uuids(self):
        provider = UUIDProvider()
        issued = {provider.new_id() for _ in range(100)}

        assert len(issued) == 100
        for value in issued:
            assert uuid.UUID(value).version == 4

    def test_default_logger_uses_uuids(self, stream):
        from src.common import new_logger

        ctx, _ = new_logger("production", "info", stream=stream).with_request_id()
        assert uuid.UUID(get_request_id(ctx))
