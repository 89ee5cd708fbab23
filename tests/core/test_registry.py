"""
Tests for the handler registry and dispatcher
"""
import time

import pytest

from greeter.core.channel import EOF
from greeter.core.contract import GREETER_METHODS, SAY_HELLO, SAY_HELLO_AGAIN, SAY_HELLO_STREAM
from greeter.core.errors import (
    HandlerError,
    MethodNotFoundError,
    ProtocolMisuseError,
    TransportError,
)
from greeter.core.handlers import Greeter
from greeter.core.messages import Reply, Request, greet
from greeter.core.patterns import SERVICE_NAME, Pattern
from greeter.core.registry import Dispatcher, HandlerRegistry


def wait_until(condition, timeout: float = 1.0) -> bool:
    deadline = time.time() + timeout
    while not condition():
        if time.time() > deadline:
            return False
        time.sleep(0.01)
    return True


@pytest.fixture
def dispatcher():
    def failing(request, context):
        raise ValueError("boom")

    registry = HandlerRegistry()
    registry.register_handler(Pattern.UNARY, lambda request, context: greet(request.name))
    registry.register("Fail", Pattern.UNARY, failing)
    registry.register("Silent", Pattern.CLIENT_STREAM, lambda stream: None)
    registry.register("Count", Pattern.CLIENT_STREAM, lambda stream: Reply(str(len(list(stream)))))
    registry.register("First", Pattern.CLIENT_STREAM, lambda stream: greet(stream.receive().name))
    registry.register("Once", Pattern.BIDI_STREAM, lambda stream: stream.send(Reply("bye")))

    dispatcher = Dispatcher(registry, max_workers=4)
    dispatcher.start()
    yield dispatcher
    dispatcher.stop()


class TestHandlerRegistry:
    """Explicit method registration and lookup"""

    def test_register_servicer_binds_every_method(self):
        registry = HandlerRegistry()
        registry.register_servicer(Greeter())

        assert len(registry) == 4
        for method in GREETER_METHODS:
            assert registry.lookup(method).method == method
        assert [h.method for h in registry.services()[SERVICE_NAME]] == list(GREETER_METHODS)

    def test_lookup_by_path_and_name(self):
        registry = HandlerRegistry()
        registry.register_servicer(Greeter())

        assert registry.lookup("/helloworld.Greeter/SayHelloAgain").method == SAY_HELLO_AGAIN
        assert registry.lookup("SayHelloStream").method == SAY_HELLO_STREAM
        assert "SayHello" in registry
        assert "Missing" not in registry

    def test_unknown_method(self):
        with pytest.raises(MethodNotFoundError):
            HandlerRegistry().lookup(SAY_HELLO)

    def test_duplicate_registration(self):
        registry = HandlerRegistry()
        registry.register_handler(Pattern.UNARY, lambda request, context: None)

        with pytest.raises(ValueError, match="already registered"):
            registry.register_handler(Pattern.UNARY, lambda request, context: None)

    def test_registries_are_independent(self):
        first = HandlerRegistry()
        first.register_servicer(Greeter())

        assert len(HandlerRegistry()) == 0


class TestDispatcher:
    """Per-call handler execution"""

    def test_unary_call(self, dispatcher):
        call = dispatcher.open_call(SAY_HELLO)
        call.client.send(Request("duty"))
        call.client.close_send()

        assert call.client.receive() == Reply("Hello duty")
        assert call.client.receive() is EOF
        assert call.wait(timeout=1)
        assert call.error is None

    def test_handler_exception_becomes_handler_error(self, dispatcher):
        call = dispatcher.open_call("Fail")
        call.client.send(Request("duty"))
        call.client.close_send()

        with pytest.raises(HandlerError, match="ValueError: boom"):
            call.client.receive()

    def test_client_stream_reply_follows_half_close(self, dispatcher):
        call = dispatcher.open_call("Count")
        for name in ("a", "b", "c"):
            call.client.send(Request(name))
        call.client.close_send()

        assert call.client.receive() == Reply("3")
        assert call.client.receive() is EOF
        assert call.wait(timeout=1)

    def test_missing_reply_is_handler_error(self, dispatcher):
        call = dispatcher.open_call("Silent")
        call.client.close_send()

        with pytest.raises(HandlerError, match="no reply"):
            call.client.receive()

    def test_unary_rejects_extra_requests(self, dispatcher):
        call = dispatcher.open_call(SAY_HELLO)
        call.client.send(Request("one"))
        call.client.send(Request("two"))
        call.client.close_send()

        with pytest.raises(ProtocolMisuseError, match="more"):
            call.client.receive()

    def test_unknown_method(self, dispatcher):
        with pytest.raises(MethodNotFoundError):
            dispatcher.open_call(SAY_HELLO_AGAIN)

    def test_not_running(self):
        registry = HandlerRegistry()
        registry.register_servicer(Greeter())

        with pytest.raises(TransportError):
            Dispatcher(registry).open_call(SAY_HELLO)

    def test_stop_cancels_active_calls(self, dispatcher):
        call = dispatcher.open_call("Count")
        assert dispatcher.active_calls == 1

        dispatcher.stop()
        dispatcher.start()  # fixture teardown stops it again

        assert call.wait(timeout=1)
        assert call.error.code == "CANCELLED"

    def test_bidi_handler_returning_early_completes_call(self, dispatcher):
        call = dispatcher.open_call("Once", timeout=0.3)
        call.client.send(Request("a"))

        assert call.client.receive() == Reply("bye")
        assert call.client.receive() is EOF
        assert call.wait(timeout=1)
        assert wait_until(lambda: dispatcher.active_calls == 0)

        # Unread requests are dropped, as gRPC does once the status is sent
        call.client.send(Request("b"))
        call.client.close_send()

        # The deadline no longer applies to a completed call
        time.sleep(0.5)
        assert call.error is None

    def test_client_stream_handler_returning_early_completes_call(self, dispatcher):
        call = dispatcher.open_call("First")
        call.client.send(Request("x"))
        call.client.send(Request("y"))

        assert call.client.receive() == greet("x")
        assert call.client.receive() is EOF
        assert call.wait(timeout=1)
        assert call.error is None
        assert wait_until(lambda: dispatcher.active_calls == 0)
