"""
Tests for the badge state machine.
"""

import asyncio

import pytest

from clickscan.badge import (
    BUSY_TEXT,
    COMPLETE_COLOR,
    EMPTY_COLOR,
    BadgeEffect,
    BadgeKind,
    BadgeState,
    BadgeStateMachine,
    effect_for,
)


class RecordingRenderer:
    """Commits effects after yielding to the loop, like a real UI call."""

    def __init__(self, fail_first=False):
        self.effects = []
        self.fail_first = fail_first

    async def apply(self, effect):
        await asyncio.sleep(0)
        if self.fail_first:
            self.fail_first = False
            raise RuntimeError("renderer unavailable")
        self.effects.append(effect)


def texts(renderer):
    return [e.text for e in renderer.effects]


def test_effect_for_complete_distinguishes_zero():
    """Test the distinct visual treatment of complete(0)."""
    assert effect_for(BadgeState(BadgeKind.COMPLETE, 0)) == BadgeEffect("0", EMPTY_COLOR)
    assert effect_for(BadgeState(BadgeKind.COMPLETE, 3)) == BadgeEffect("3", COMPLETE_COLOR)
    assert effect_for(BadgeState(BadgeKind.BUSY)).text == BUSY_TEXT
    assert effect_for(BadgeState(BadgeKind.CLEAR)) == BadgeEffect("", None)


def test_negative_clear_delay():
    """Test that a negative delay is rejected."""
    with pytest.raises(ValueError):
        BadgeStateMachine(RecordingRenderer(), clear_delay=-1)


@pytest.mark.asyncio
async def test_transitions_apply_in_order():
    """Test that transitions are committed one after another in post order."""
    renderer = RecordingRenderer()
    badge = BadgeStateMachine(renderer, clear_delay=10.0)
    await badge.start()

    badge.busy()
    badge.intermediate(3)
    badge.complete(2)
    await badge.drain()

    assert texts(renderer) == [BUSY_TEXT, "3", "2"]
    assert badge.state == BadgeState(BadgeKind.COMPLETE, 2)
    await badge.close()


@pytest.mark.asyncio
async def test_clear_follows_complete():
    """Test the automatic clear after the delay."""
    renderer = RecordingRenderer()
    badge = BadgeStateMachine(renderer, clear_delay=0.01)
    await badge.start()

    badge.busy()
    badge.complete(0)
    await badge.settle()

    assert texts(renderer) == [BUSY_TEXT, "0", ""]
    assert renderer.effects[1].color == EMPTY_COLOR
    assert badge.state.kind is BadgeKind.IDLE
    await badge.close()


@pytest.mark.asyncio
async def test_new_transition_cancels_pending_clear():
    """Test that a transition arriving before the clear preempts it."""
    renderer = RecordingRenderer()
    badge = BadgeStateMachine(renderer, clear_delay=0.05)
    await badge.start()

    badge.complete(1)
    await badge.drain()
    badge.busy()
    await badge.drain()
    await asyncio.sleep(0.1)

    assert texts(renderer) == ["1", BUSY_TEXT]
    assert badge.state.kind is BadgeKind.BUSY
    await badge.close()


@pytest.mark.asyncio
async def test_renderer_failure_does_not_stop_the_chain():
    """Test that later transitions still apply after a renderer error."""
    renderer = RecordingRenderer(fail_first=True)
    badge = BadgeStateMachine(renderer, clear_delay=10.0)
    await badge.start()

    badge.busy()
    badge.intermediate(1)
    await badge.drain()

    assert texts(renderer) == ["1"]
    assert badge.state == BadgeState(BadgeKind.INTERMEDIATE, 1)
    await badge.close()
