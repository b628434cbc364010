"""Test stay-connected scopes."""

from unittest.mock import MagicMock, patch

import pytest

from warren.adapters.base import CONNECTED, NOT_CONNECTED, call_with_adapter
from tests.mocks import make_adapter


class TestStayConnected:
    def test_does_not_disconnect_after_every_publish(self, adapter_and_factory):
        adapter, factory = adapter_and_factory

        with adapter.stay_connected():
            for _ in range(3):
                adapter.publish("testq", {"foo": "bar"})

        client = factory.last
        assert len(client.sent) == 3
        assert client.start_calls == 1
        assert client.stop_calls == 1

    def test_connection_open_inside_scope(self, adapter_and_factory):
        adapter, factory = adapter_and_factory

        with adapter.stay_connected():
            adapter.publish("testq", "x")
            assert factory.last.status == CONNECTED

        assert factory.last.status == NOT_CONNECTED

    def test_context_manager_yields_adapter(self, adapter_and_factory):
        adapter, _ = adapter_and_factory
        with adapter.stay_connected() as a:
            assert a is adapter

    def test_function_receives_adapter_and_result_returned(self, adapter_and_factory):
        adapter, _ = adapter_and_factory
        assert adapter.stay_connected(lambda a: a) is adapter

    def test_function_form_keeps_connection(self, adapter_and_factory):
        adapter, factory = adapter_and_factory

        def work(a):
            a.publish("q", 1)
            a.publish("q", 2)
            return "done"

        assert adapter.stay_connected(work) == "done"
        assert factory.last.stop_calls == 1

    def test_nesting_disconnects_once_after_outermost(self, adapter_and_factory):
        adapter, factory = adapter_and_factory

        with adapter.stay_connected():
            with adapter.stay_connected():
                with adapter.stay_connected():
                    adapter.publish("q", "x")
                assert factory.last.stop_calls == 0
            assert factory.last.stop_calls == 0
            assert adapter.is_staying_connected

        assert factory.last.stop_calls == 1
        assert not adapter.is_staying_connected

    def test_empty_scope_does_not_create_client(self, adapter_and_factory):
        adapter, factory = adapter_and_factory

        with adapter.stay_connected():
            pass

        assert factory.clients == []

    def test_scope_restores_flag_when_body_raises(self, adapter_and_factory):
        adapter, factory = adapter_and_factory

        with pytest.raises(RuntimeError):
            with adapter.stay_connected():
                adapter.publish("q", "x")
                raise RuntimeError("boom")

        assert not adapter.is_staying_connected
        assert factory.last.stop_calls == 1

    def test_inner_error_keeps_outer_scope_connected(self, adapter_and_factory):
        adapter, factory = adapter_and_factory

        with adapter.stay_connected():
            adapter.publish("q", "x")
            with pytest.raises(RuntimeError):
                with adapter.stay_connected():
                    raise RuntimeError("boom")
            assert factory.last.status == CONNECTED
            adapter.publish("q", "y")

        assert factory.last.stop_calls == 1
        assert factory.last.start_calls == 1

    def test_already_disconnected_client_not_stopped_again(self):
        adapter, factory = make_adapter()

        with adapter.stay_connected():
            adapter.publish("q", "x")
            factory.last.stop()

        assert factory.last.stop_calls == 1


class TestStayConnectedFunctionArguments:
    def test_zero_argument_function_called_without_adapter(self, adapter_and_factory):
        adapter, factory = adapter_and_factory

        def work():
            adapter.publish("q", "x")
            return "ok"

        assert adapter.stay_connected(work) == "ok"
        assert factory.last.stop_calls == 1

    def test_var_positional_function_receives_adapter(self, adapter_and_factory):
        adapter, _ = adapter_and_factory
        assert adapter.stay_connected(lambda *args: args) == (adapter,)

    def test_keyword_only_function_called_without_adapter(self, adapter_and_factory):
        adapter, _ = adapter_and_factory

        def work(*, retries=3):
            return retries

        assert adapter.stay_connected(work) == 3

    def test_call_with_adapter_falls_back_for_unintrospectable_callables(self):
        func = MagicMock(return_value="done")
        with patch("warren.adapters.base.inspect.signature", side_effect=ValueError("no signature")):
            assert call_with_adapter(func, "adapter") == "done"
        func.assert_called_once_with("adapter")


class TestStayConnectedReleaseFailure:
    def test_body_error_wins_over_failing_disconnect(self, adapter_and_factory):
        adapter, factory = adapter_and_factory

        with pytest.raises(ValueError, match="bad payload"):
            with adapter.stay_connected():
                adapter.publish("q", "x")
                factory.last.fail_stop = True
                raise ValueError("bad payload")

        assert factory.last.stop_calls == 1
        assert not adapter.is_staying_connected

    def test_disconnect_error_surfaces_when_body_succeeds(self, adapter_and_factory):
        adapter, factory = adapter_and_factory

        with pytest.raises(ConnectionError, match="stop failed"):
            with adapter.stay_connected():
                adapter.publish("q", "x")
                factory.last.fail_stop = True

        assert not adapter.is_staying_connected
