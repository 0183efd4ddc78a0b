"""
MOOMA Exercise Service - Breathing Guide

Countdown state machine for the breathing exercises, cycling
breatheIn -> hold -> breatheOut -> breatheIn. It is driven by periodic
ticks (BreathingTimer at ~10Hz) rather than by video frames.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from core.config import settings


logger = logging.getLogger("mooma.exercise")

# Countdowns within this of zero count as finished (float tick drift)
EPSILON = 1e-6


class BreathingPhase(Enum):
    BREATHE_IN = "breatheIn"
    HOLD = "hold"
    BREATHE_OUT = "breatheOut"


PHASE_ORDER = (BreathingPhase.BREATHE_IN, BreathingPhase.HOLD, BreathingPhase.BREATHE_OUT)

PHASE_LABELS = {
    BreathingPhase.BREATHE_IN: "Tarik Napas",
    BreathingPhase.HOLD: "Tahan",
    BreathingPhase.BREATHE_OUT: "Hembuskan",
}


@dataclass
class BreathingState:
    """Snapshot of the guide for the UI."""
    phase: BreathingPhase
    countdown: float
    total_duration: float
    cycles: int
    rep_completed: bool
    running: bool

    @property
    def display_countdown(self) -> int:
        return max(0, math.ceil(self.countdown - EPSILON))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "label": PHASE_LABELS[self.phase],
            "countdown": self.display_countdown,
            "remaining": round(self.countdown, 2),
            "total_duration": self.total_duration,
            "cycles": self.cycles,
            "rep_completed": self.rep_completed,
            "running": self.running,
        }


class BreathingGuide:
    """
    Breathing cycle timer.

    Usage:
        guide = BreathingGuide(4, 2, 4)
        guide.start()
        state = guide.tick()       # wall clock since last tick
        state = guide.tick(dt=0.1) # simulated time
    """

    def __init__(
        self,
        breathe_in: float = 4.0,
        hold: float = 2.0,
        breathe_out: float = 4.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        durations = (breathe_in, hold, breathe_out)
        if any(d < 0 for d in durations) or sum(durations) <= 0:
            raise ValueError(f"Invalid breathing durations: {durations}")

        self.durations = dict(zip(PHASE_ORDER, (float(d) for d in durations)))
        self._clock = clock

        self.phase = BreathingPhase.BREATHE_IN
        self.countdown = self.durations[self.phase]
        self.cycles = 0
        self.running = False
        self._just_completed = False
        self._last_tick: Optional[float] = None

    def start(self, now: Optional[float] = None):
        """Start from breatheIn with zeroed counters."""
        self.reset()
        self.resume(now)

    def stop(self):
        """Halt ticking, keeping phase and counters."""
        self.running = False
        self._last_tick = None

    def resume(self, now: Optional[float] = None):
        self.running = True
        self._last_tick = self._clock() if now is None else now

    def reset(self):
        self.phase = BreathingPhase.BREATHE_IN
        self.countdown = self.durations[self.phase]
        self.cycles = 0
        self.running = False
        self._just_completed = False
        self._last_tick = None

    def tick(self, dt: Optional[float] = None) -> BreathingState:
        """
        Advance the countdown by dt seconds (or by wall time since the last tick).

        A just-completed cycle is reported on the tick that completes it only.
        """
        self._just_completed = False
        if not self.running:
            return self.get_state()

        if dt is None:
            now = self._clock()
            dt = now - self._last_tick if self._last_tick is not None else 0.0
            self._last_tick = now

        remaining = self.countdown - max(0.0, dt)
        while remaining <= EPSILON:
            self._next_phase()
            remaining += self.durations[self.phase]
        self.countdown = remaining

        return self.get_state()

    def _next_phase(self):
        idx = PHASE_ORDER.index(self.phase)
        self.phase = PHASE_ORDER[(idx + 1) % len(PHASE_ORDER)]
        if self.phase == BreathingPhase.BREATHE_IN:
            self.cycles += 1
            self._just_completed = True
            logger.debug(f"🌬️ Breathing cycle {self.cycles} completed")

    def get_state(self) -> BreathingState:
        """Pure read of the current state."""
        return BreathingState(
            phase=self.phase,
            countdown=self.countdown,
            total_duration=self.durations[self.phase],
            cycles=self.cycles,
            rep_completed=self._just_completed,
            running=self.running,
        )


class BreathingTimer:
    """
    Periodic asyncio task ticking a BreathingGuide.

    The owner must call stop() on every exit path.
    """

    def __init__(
        self,
        guide: BreathingGuide,
        on_tick: Optional[Callable[[BreathingState], Awaitable[None]]] = None,
        interval: Optional[float] = None,
    ):
        self.guide = guide
        self.on_tick = on_tick
        self.interval = interval or settings.BREATHING_TICK_SECONDS
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return

        async def tick_loop():
            while True:
                await asyncio.sleep(self.interval)
                state = self.guide.tick()
                if self.on_tick and state.running:
                    await self.on_tick(state)

        self._task = asyncio.create_task(tick_loop())
        logger.info(f"⏱️ Breathing timer started (interval: {self.interval}s)")

    async def stop(self):
        """Cancel the tick task and wait for it to finish."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"⚠️ Breathing timer ended with error: {e}")
        logger.info("⏱️ Breathing timer stopped")
