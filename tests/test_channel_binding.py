from __future__ import annotations

import pytest

from uiflow import ChannelBinding, ChannelStrategy, ConfigurationError, create_channel, resolve_channels


@pytest.mark.basic
def test_resolve_channels_without_incoming_map_is_none() -> None:
    prev = {"a": create_channel(0)}
    assert resolve_channels(None, ChannelStrategy.STICKY, prev) is None
    assert resolve_channels(None, ChannelStrategy.REPLACE, None) is None


@pytest.mark.basic
def test_sticky_keeps_first_bound_instance_per_key() -> None:
    a = create_channel(1)
    b = create_channel(100)
    c = create_channel(7)

    first = resolve_channels({"counter": a}, ChannelStrategy.STICKY, None)
    assert first is not None and first["counter"] is a

    second = resolve_channels({"counter": b}, ChannelStrategy.STICKY, first)
    assert second is first
    assert second["counter"] is a

    third = resolve_channels({"counter": b, "other": c}, ChannelStrategy.STICKY, second)
    assert third is not first
    assert third["counter"] is a
    assert third["other"] is c


@pytest.mark.basic
def test_sticky_binding_never_changes_across_many_replacements() -> None:
    original = create_channel(0)
    resolved = resolve_channels({"k": original}, "sticky", None)
    for i in range(10):
        resolved = resolve_channels({"k": create_channel(i)}, "sticky", resolved)
        assert resolved is not None
        assert resolved["k"] is original


@pytest.mark.basic
def test_replace_always_takes_latest_instance() -> None:
    resolved = None
    for i in range(5):
        latest = create_channel(i)
        resolved = resolve_channels({"k": latest}, ChannelStrategy.REPLACE, resolved)
        assert resolved is not None
        assert resolved["k"] is latest


@pytest.mark.basic
def test_structurally_equal_map_returns_previous_identity() -> None:
    a = create_channel(0)
    b = create_channel(0)
    prev = resolve_channels({"a": a, "b": b}, ChannelStrategy.REPLACE, None)

    again = resolve_channels({"b": b, "a": a}, ChannelStrategy.REPLACE, prev)
    assert again is prev

    again_sticky = resolve_channels({"a": a, "b": b}, ChannelStrategy.STICKY, prev)
    assert again_sticky is prev


@pytest.mark.basic
def test_removed_key_produces_new_map() -> None:
    a = create_channel(0)
    b = create_channel(0)
    prev = resolve_channels({"a": a, "b": b}, ChannelStrategy.STICKY, None)
    smaller = resolve_channels({"a": a}, ChannelStrategy.STICKY, prev)
    assert smaller is not prev
    assert smaller == {"a": a}


@pytest.mark.basic
def test_unknown_strategy_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        resolve_channels({"a": create_channel(0)}, "merge", None)


@pytest.mark.basic
def test_binding_resubscribes_only_when_resolved_map_changes() -> None:
    fired: list[str] = []
    binding = ChannelBinding(lambda key: (lambda: fired.append(key)))
    a = create_channel(0)
    b = create_channel(0)

    assert binding.bind({"a": a}) is True
    assert a.subscriber_count == 1

    assert binding.bind({"a": a}) is False
    assert a.subscriber_count == 1

    assert binding.bind({"a": a, "b": b}) is True
    assert a.subscriber_count == 1
    assert b.subscriber_count == 1
    assert binding.subscription_count == 2

    a.emit(1)
    b.emit(1)
    assert fired == ["a", "b"]

    assert binding.bind(None) is True
    assert binding.channels is None
    assert a.subscriber_count == 0
    assert b.subscriber_count == 0


@pytest.mark.basic
def test_binding_release_drops_all_subscriptions() -> None:
    binding = ChannelBinding(lambda key: (lambda: None))
    a = create_channel(0)
    binding.bind({"a": a})
    binding.release()
    assert a.subscriber_count == 0
    assert binding.subscription_count == 0
    binding.release()
