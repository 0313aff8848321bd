import pytest
from structlog.testing import capture_logs

from hookrelay.events import EventType
from hookrelay.services.registry import HandlerRegistry, is_async_handler


async def first_handler(event):
    pass


async def second_handler(event):
    pass


async def third_handler(event):
    pass


def test_handlers_run_in_registration_order_for_equal_priority():
    registry = HandlerRegistry()
    registry.register(EventType.PUSH, first_handler)
    registry.register(EventType.PUSH, second_handler)
    registry.register(EventType.PUSH, third_handler)

    handlers = [r.handler for r in registry.handlers_for(EventType.PUSH)]

    assert handlers == [first_handler, second_handler, third_handler]


def test_higher_priority_runs_first():
    registry = HandlerRegistry()
    registry.register(EventType.PUSH, first_handler)
    registry.register(EventType.PUSH, second_handler, priority=10)
    registry.register(EventType.PUSH, third_handler, priority=-5)

    handlers = [r.handler for r in registry.handlers_for(EventType.PUSH)]

    assert handlers == [second_handler, first_handler, third_handler]


def test_handlers_are_scoped_by_event_type():
    registry = HandlerRegistry()
    registry.register(EventType.PUSH, first_handler)
    registry.register("merge", second_handler)

    assert [r.handler for r in registry.handlers_for(EventType.MERGE)] == [
        second_handler
    ]
    assert registry.handlers_for(EventType.PULL_REQUEST) == ()


def test_default_name_is_qualified_name():
    registry = HandlerRegistry()

    registration = registry.register(EventType.PUSH, first_handler)

    assert registration.name == f"{__name__}.first_handler"


def test_same_handler_name_twice_is_rejected():
    registry = HandlerRegistry()
    registry.register(EventType.PUSH, first_handler)

    with pytest.raises(ValueError, match="already registered"):
        registry.register(EventType.PUSH, first_handler)

    registry.register(EventType.PUSH, first_handler, name="first_handler.again")
    registry.register(EventType.MERGE, first_handler)


def test_unknown_event_type_is_rejected():
    registry = HandlerRegistry()

    with pytest.raises(ValueError):
        registry.register("issue_comment", first_handler)


def test_non_callable_handler_is_rejected():
    registry = HandlerRegistry()

    with pytest.raises(TypeError):
        registry.register(EventType.PUSH, "not-a-handler")


def test_frozen_registry_rejects_registration():
    registry = HandlerRegistry()
    registry.register(EventType.PUSH, first_handler)
    registry.freeze()

    with pytest.raises(RuntimeError, match="frozen"):
        registry.register(EventType.PUSH, second_handler)

    assert len(registry.handlers_for(EventType.PUSH)) == 1


def test_decorator_registration():
    registry = HandlerRegistry()

    @registry.on(EventType.PULL_REQUEST, priority=3, name="announce")
    async def announce(event):
        pass

    (registration,) = registry.handlers_for(EventType.PULL_REQUEST)
    assert registration.handler is announce
    assert registration.priority == 3
    assert registration.name == "announce"


def test_lookup_returns_snapshot():
    registry = HandlerRegistry()
    registry.register(EventType.PUSH, first_handler)

    snapshot = registry.handlers_for(EventType.PUSH)
    registry.register(EventType.PUSH, second_handler)

    assert len(snapshot) == 1
    assert len(registry.handlers_for(EventType.PUSH)) == 2


def test_clear_resets_registry():
    registry = HandlerRegistry()
    registry.register(EventType.PUSH, first_handler)
    registry.freeze()

    registry.clear()

    assert registry.frozen is False
    assert registry.handlers_for(EventType.PUSH) == ()


def test_sync_handler_registration_warns():
    registry = HandlerRegistry()

    def sync_handler(event):
        pass

    async def async_handler(event):
        pass

    with capture_logs() as logs:
        registry.register(EventType.PUSH, sync_handler, name="sync")
        registry.register(EventType.PUSH, async_handler, name="async")

    warnings = [entry for entry in logs if entry["log_level"] == "warning"]
    assert [entry["handler"] for entry in warnings] == ["sync"]
    assert warnings[0]["event"] == "Sync handler cannot be interrupted on timeout"


def test_is_async_handler():
    class CallableHandler:
        async def __call__(self, event):
            pass

    async def coroutine_handler(event):
        pass

    assert is_async_handler(coroutine_handler)
    assert is_async_handler(CallableHandler())
    assert not is_async_handler(lambda event: None)
