"""Tests for session state and its change notifications."""

from __future__ import annotations

import pytest

from skc_app.input.protocol import UNRECOGNIZED, DecodedEvent, EventKind, LayerState, MacroKeyState
from skc_app.input.state import EventHook, SessionSnapshot, SessionState, StateChange, StateField

LAYER_ACK_MAC = DecodedEvent(EventKind.LAYER_ACK, layer=LayerState.MAC)
LAYER_EVENT_WINDOWS = DecodedEvent(EventKind.LAYER_EVENT, layer=LayerState.WINDOWS)
MACRO_DISABLED = DecodedEvent(EventKind.MACRO_KEY_ACK, macro_key=MacroKeyState.DISABLED)
MACRO_ENABLED = DecodedEvent(EventKind.MACRO_KEY_ACK, macro_key=MacroKeyState.ENABLED)


@pytest.fixture
def state_and_changes() -> tuple[SessionState, list[StateChange]]:
    state = SessionState()
    changes: list[StateChange] = []
    state.changed.connect(changes.append)
    return state, changes


# ============================================================================
# Defaults
# ============================================================================


class TestDefaults:
    def test_initial_state(self) -> None:
        """A new session has no layer, macro key armed, disconnected."""
        state = SessionState()
        assert state.layer is None
        assert state.macro_key_disabled is False
        assert state.connected is False


# ============================================================================
# Applying decoded events
# ============================================================================


class TestApply:
    """Tests for applying decoded frames."""

    def test_layer_ack_sets_layer(self, state_and_changes) -> None:
        state, changes = state_and_changes
        state.apply(LAYER_ACK_MAC)
        assert state.layer is LayerState.MAC
        assert changes == [StateChange(StateField.LAYER, None, LayerState.MAC)]

    def test_layer_event_sets_layer(self, state_and_changes) -> None:
        state, changes = state_and_changes
        state.apply(LAYER_ACK_MAC)
        state.apply(LAYER_EVENT_WINDOWS)
        assert state.layer is LayerState.WINDOWS
        assert changes[-1] == StateChange(StateField.LAYER, LayerState.MAC, LayerState.WINDOWS)

    @pytest.mark.parametrize("prior", [None, LayerState.WINDOWS, LayerState.MAC])
    def test_macro_key_ack_leaves_layer(self, prior: LayerState | None) -> None:
        """Macro key acks never touch the layer, whatever it was."""
        state = SessionState()
        if prior is not None:
            state.apply(DecodedEvent(EventKind.LAYER_ACK, layer=prior))
        changes: list[StateChange] = []
        state.changed.connect(changes.append)

        state.apply(MACRO_DISABLED)

        assert state.macro_key_disabled is True
        assert state.layer is prior
        assert changes == [StateChange(StateField.MACRO_KEY_DISABLED, False, True)]

    def test_macro_key_enabled_ack(self, state_and_changes) -> None:
        state, changes = state_and_changes
        state.apply(MACRO_DISABLED)
        state.apply(MACRO_ENABLED)
        assert state.macro_key_disabled is False
        assert len(changes) == 2

    def test_unrecognized_changes_nothing(self, state_and_changes) -> None:
        state, changes = state_and_changes
        assert state.apply(UNRECOGNIZED) == []
        assert changes == []

    def test_repeated_value_does_not_notify(self, state_and_changes) -> None:
        """Only actual changes are announced."""
        state, changes = state_and_changes
        state.apply(LAYER_ACK_MAC)
        state.apply(LAYER_ACK_MAC)
        assert len(changes) == 1


# ============================================================================
# Lifecycle
# ============================================================================


class TestReset:
    def test_reset_restores_defaults(self, state_and_changes) -> None:
        state, changes = state_and_changes
        state.set_connected(True)
        state.apply(LAYER_ACK_MAC)
        state.apply(MACRO_DISABLED)
        changes.clear()

        state.reset()

        assert state.snapshot() == SessionSnapshot(layer=None, macro_key_disabled=False, connected=False)
        assert {c.field for c in changes} == set(StateField)

    def test_reset_when_already_default_is_silent(self, state_and_changes) -> None:
        state, changes = state_and_changes
        state.reset()
        assert changes == []


# ============================================================================
# EventHook
# ============================================================================


class TestEventHook:
    def test_disconnect_stops_delivery(self) -> None:
        hook: EventHook[int] = EventHook("test")
        seen: list[int] = []
        unsubscribe = hook.connect(seen.append)
        hook.emit(1)
        unsubscribe()
        hook.emit(2)
        assert seen == [1]
        assert len(hook) == 0

    def test_failing_listener_does_not_block_others(self) -> None:
        hook: EventHook[int] = EventHook("test")
        seen: list[int] = []

        def broken(_: int) -> None:
            raise RuntimeError("boom")

        hook.connect(broken)
        hook.connect(seen.append)
        hook.emit(7)
        assert seen == [7]
