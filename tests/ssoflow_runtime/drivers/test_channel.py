"""Tests for the keyed observer channel."""

from typing import Any

from ssoflow_runtime.drivers import KeyedChannel


class TestKeyedChannel:
    """Tests for subscribe/publish/unsubscribe."""

    def test_publish_notifies_only_changed_keys(self) -> None:
        channel = KeyedChannel()
        seen: list[tuple[str, Any]] = []
        channel.subscribe("a", lambda key, value: seen.append((key, value)))
        channel.subscribe("b", lambda key, value: seen.append((key, value)))

        channel.publish({"a": 1})

        assert seen == [("a", 1)]

    def test_each_handler_called_once_per_key(self) -> None:
        channel = KeyedChannel()
        calls: list[str] = []
        channel.subscribe("a", lambda key, value: calls.append("first"))
        channel.subscribe("a", lambda key, value: calls.append("second"))

        channel.publish({"a": 1, "b": 2})

        assert calls == ["first", "second"]

    def test_wildcard_sees_every_key(self) -> None:
        channel = KeyedChannel()
        keys: list[str] = []
        channel.subscribe_all(lambda key, value: keys.append(key))

        channel.publish({"a": 1, "b": 2})

        assert keys == ["a", "b"]

    def test_unsubscribe_is_idempotent(self) -> None:
        channel = KeyedChannel()
        calls: list[Any] = []
        unsubscribe = channel.subscribe("a", lambda key, value: calls.append(value))

        unsubscribe()
        unsubscribe()
        channel.publish({"a": 1})

        assert calls == []
        assert channel.subscriber_count("a") == 0
        assert list(channel.keys()) == []

    def test_unsubscribe_leaves_other_handlers(self) -> None:
        channel = KeyedChannel()
        calls: list[str] = []
        first = channel.subscribe("a", lambda key, value: calls.append("first"))
        channel.subscribe("a", lambda key, value: calls.append("second"))

        first()
        channel.publish({"a": 1})

        assert calls == ["second"]

    def test_clear_removes_all(self) -> None:
        channel = KeyedChannel()
        channel.subscribe("a", lambda key, value: None)
        channel.subscribe_all(lambda key, value: None)

        channel.clear()

        assert channel.subscriber_count("a") == 0
        assert list(channel.keys()) == []
