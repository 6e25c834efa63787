"""
Tests for volume, mute and gesture-driven volume on the session controller.
"""
import asyncio

import pytest

from songdeck.player.controller import PlaybackSessionController


def run(coro):
    return asyncio.run(coro)


class TestSetVolume:

    def test_start_pushes_initial_volume(self, device, store):
        async def scenario():
            controller = PlaybackSessionController(device, store, initial_volume=0.8)
            await controller.start()
            return controller.state

        state = run(scenario())
        assert state.volume == 0.8
        assert device.volume == 0.8

    @pytest.mark.parametrize("requested,expected", [
        (0.5, 0.5), (1.7, 1.0), (-0.2, 0.0), (1, 1.0),
    ])
    def test_volume_is_clamped(self, device, store, requested, expected):
        async def scenario():
            controller = PlaybackSessionController(device, store)
            await controller.set_volume(requested)
            return controller.state.volume

        assert run(scenario()) == expected
        assert device.volume == expected

    def test_zero_mutes_and_unmute_restores_previous_level(self, device, store):
        async def scenario():
            controller = PlaybackSessionController(device, store)
            await controller.set_volume(0.6)
            await controller.set_volume(0)
            muted = controller.state
            await controller.toggle_mute()
            return muted, controller.state

        muted, restored = run(scenario())
        assert muted.is_muted is True
        assert muted.effective_volume == 0.0
        assert restored.is_muted is False
        assert restored.volume == 0.6
        assert device.volume == 0.6


class TestToggleMute:

    def test_mute_keeps_stored_volume(self, device, store):
        async def scenario():
            controller = PlaybackSessionController(device, store, initial_volume=0.8)
            await controller.toggle_mute()
            muted = controller.state
            device_level = device.volume
            await controller.toggle_mute()
            return muted, device_level, controller.state

        muted, device_level, unmuted = run(scenario())
        assert muted.is_muted is True
        assert muted.volume == 0.8
        assert device_level == 0.0
        assert unmuted.is_muted is False
        assert unmuted.volume == 0.8
        assert device.volume == 0.8

    def test_setting_volume_unmutes(self, device, store):
        async def scenario():
            controller = PlaybackSessionController(device, store, initial_volume=0.8)
            await controller.toggle_mute()
            await controller.set_volume(0.3)
            return controller.state

        state = run(scenario())
        assert state.is_muted is False
        assert state.volume == 0.3


class TestGestureVolume:

    def test_deltas_accumulate(self, device, store):
        """0.8 and five -0.05 deltas reads 0.55."""
        async def scenario():
            controller = PlaybackSessionController(device, store, initial_volume=0.8)
            await controller.set_volume_gesture_active(True)
            for _ in range(5):
                await controller.apply_volume_gesture_delta(-0.05)
            return controller.state

        state = run(scenario())
        assert state.volume == pytest.approx(0.55)
        assert state.is_volume_gesture_active is True
        assert device.volume == pytest.approx(0.55)

    def test_deltas_ignored_when_not_armed(self, device, store):
        async def scenario():
            controller = PlaybackSessionController(device, store, initial_volume=0.8)
            await controller.apply_volume_gesture_delta(-0.3)
            await controller.set_volume_gesture_active(True)
            await controller.set_volume_gesture_active(False)
            await controller.apply_volume_gesture_delta(-0.3)
            return controller.state

        state = run(scenario())
        assert state.volume == 0.8
        assert state.is_volume_gesture_active is False

    def test_deltas_clamp_at_bounds(self, device, store):
        async def scenario():
            controller = PlaybackSessionController(device, store, initial_volume=0.95)
            await controller.set_volume_gesture_active(True)
            await controller.apply_volume_gesture_delta(0.2)
            top = controller.state.volume
            for _ in range(30):
                await controller.apply_volume_gesture_delta(-0.1)
            bottom = controller.state
            await controller.apply_volume_gesture_delta(0.1)
            return top, bottom, controller.state

        top, bottom, back_up = run(scenario())
        assert top == 1.0
        assert bottom.volume == 0.0
        assert bottom.is_muted is True
        assert back_up.volume == pytest.approx(0.1)
        assert back_up.is_muted is False

    def test_wheel_scroll_up_raises_volume(self, device, store):
        async def scenario():
            controller = PlaybackSessionController(device, store, initial_volume=0.5,
                                                   wheel_scale=1000)
            await controller.set_volume_gesture_active(True)
            await controller.apply_wheel(-100)
            up = controller.state.volume
            await controller.apply_wheel(250)
            return up, controller.state.volume

        up, down = run(scenario())
        assert up == pytest.approx(0.6)
        assert down == pytest.approx(0.35)
