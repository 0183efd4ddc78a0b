"""Tests for the breathing countdown state machine and its asyncio timer."""

import asyncio

import pytest

from exercise_service.models.breathing_guide import (
    BreathingGuide,
    BreathingPhase,
    BreathingTimer,
)


def run_ticks(guide, count, dt=0.1):
    return [guide.tick(dt=dt) for _ in range(count)]


def phase_sequence(states):
    sequence = []
    for state in states:
        if not sequence or sequence[-1] != state.phase:
            sequence.append(state.phase)
    return sequence


class TestBreathingGuide:

    def test_ten_seconds_of_4_2_4_is_one_cycle(self):
        guide = BreathingGuide(4, 2, 4)
        guide.start(now=0.0)
        initial = guide.get_state()

        states = run_ticks(guide, 100)

        assert guide.cycles == 1
        assert sum(s.rep_completed for s in states) == 1
        assert phase_sequence([initial] + states) == [
            BreathingPhase.BREATHE_IN,
            BreathingPhase.HOLD,
            BreathingPhase.BREATHE_OUT,
            BreathingPhase.BREATHE_IN,
        ]

    def test_start_state(self):
        guide = BreathingGuide(4, 6, 8)
        guide.start(now=0.0)
        state = guide.get_state()
        assert state.phase == BreathingPhase.BREATHE_IN
        assert state.countdown == pytest.approx(4.0)
        assert state.display_countdown == 4
        assert state.running

    def test_countdown_reloads_from_phase_duration(self):
        guide = BreathingGuide(4, 6, 8)
        guide.start(now=0.0)
        run_ticks(guide, 40)
        state = guide.get_state()
        assert state.phase == BreathingPhase.HOLD
        assert state.countdown == pytest.approx(6.0)
        assert state.total_duration == 6.0

    def test_completed_flag_clears_on_next_tick(self):
        guide = BreathingGuide(1, 1, 1)
        guide.start(now=0.0)
        states = run_ticks(guide, 90)
        completed_at = [i for i, s in enumerate(states) if s.rep_completed]
        assert completed_at == [29, 59, 89]

        # get_state is a pure read
        assert guide.get_state().rep_completed
        assert guide.get_state().rep_completed
        assert not guide.tick(dt=0.1).rep_completed

    def test_stop_keeps_phase_and_counters(self):
        guide = BreathingGuide(4, 2, 4)
        guide.start(now=0.0)
        run_ticks(guide, 45)
        before = guide.get_state()

        guide.stop()
        run_ticks(guide, 50)
        after = guide.get_state()

        assert not after.running
        assert after.phase == before.phase
        assert after.countdown == pytest.approx(before.countdown)

        guide.resume(now=0.0)
        guide.tick(dt=0.1)
        assert guide.countdown == pytest.approx(before.countdown - 0.1)

    def test_reset_returns_to_breathe_in(self):
        guide = BreathingGuide(4, 2, 4)
        guide.start(now=0.0)
        run_ticks(guide, 120)
        guide.reset()
        state = guide.get_state()
        assert state.phase == BreathingPhase.BREATHE_IN
        assert state.countdown == pytest.approx(4.0)
        assert state.cycles == 0
        assert not state.running

    def test_clock_driven_tick(self, clock):
        guide = BreathingGuide(4, 2, 4, clock=clock)
        guide.start()
        clock.advance(4.5)
        state = guide.tick()
        assert state.phase == BreathingPhase.HOLD
        assert state.countdown == pytest.approx(1.5)

    def test_large_gap_carries_over_phases(self):
        guide = BreathingGuide(4, 2, 4)
        guide.start(now=0.0)
        state = guide.tick(dt=21.0)
        assert state.cycles == 2
        assert state.phase == BreathingPhase.BREATHE_IN
        assert state.countdown == pytest.approx(3.0)

    @pytest.mark.parametrize("durations", [(-1, 2, 4), (0, 0, 0)])
    def test_invalid_durations(self, durations):
        with pytest.raises(ValueError):
            BreathingGuide(*durations)

    def test_to_dict(self):
        guide = BreathingGuide(4, 2, 4)
        guide.start(now=0.0)
        data = guide.tick(dt=0.5).to_dict()
        assert data["phase"] == "breatheIn"
        assert data["label"] == "Tarik Napas"
        assert data["countdown"] == 4


class TestBreathingTimer:

    def test_timer_ticks_and_stops(self):
        guide = BreathingGuide(4, 2, 4)
        ticks = []

        async def on_tick(state):
            ticks.append(state)

        async def scenario():
            guide.start()
            timer = BreathingTimer(guide, on_tick=on_tick, interval=0.01)
            timer.start()
            assert timer.running
            await asyncio.sleep(0.15)
            await timer.stop()
            assert not timer.running

        asyncio.run(scenario())

        assert ticks
        assert guide.countdown < 4.0

    def test_stop_without_start_is_noop(self):
        timer = BreathingTimer(BreathingGuide())
        asyncio.run(timer.stop())
        assert not timer.running
