# vigil/services/scaling_manager.py
"""
Scaling manager: sizes the analysis worker pool from frame-buffer utilization.

Control loop (one observation per tick):
    utilization >= up threshold for `up_samples` ticks in a row   → +step workers
    utilization <= down threshold for `down_samples` ticks in a row → -step workers
    anything in between resets both streaks (hysteresis band)
    no change within `cooldown_seconds` of the previous change
Targets are clamped to [min_workers, max_workers], so with a constant load the
worker count moves one way only and settles at a bound or inside the band.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from vigil.config import settings
from vigil.utils.logger import get_logger

logger = get_logger(__name__)

HISTORY_SIZE = 100


@dataclass(frozen=True)
class ScalingPolicy:
    min_workers: int = 1
    max_workers: int = 8
    scale_up_threshold: float = 0.75
    scale_down_threshold: float = 0.25
    cooldown_seconds: float = 30.0
    up_samples: int = 2
    down_samples: int = 3
    step: int = 1

    def __post_init__(self):
        if not 1 <= self.min_workers <= self.max_workers:
            raise ValueError("need 1 <= min_workers <= max_workers")
        if not 0.0 <= self.scale_down_threshold < self.scale_up_threshold <= 1.0:
            raise ValueError("need 0 <= scale_down_threshold < scale_up_threshold <= 1")
        if self.up_samples < 1 or self.down_samples < 1:
            raise ValueError("sample counts must be >= 1")
        if self.step < 1:
            raise ValueError("step must be >= 1")
        if self.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")

    @classmethod
    def from_settings(cls) -> "ScalingPolicy":
        return cls(
            min_workers=settings.SCALING_MIN_WORKERS,
            max_workers=settings.SCALING_MAX_WORKERS,
            scale_up_threshold=settings.SCALING_UP_THRESHOLD,
            scale_down_threshold=settings.SCALING_DOWN_THRESHOLD,
            cooldown_seconds=settings.SCALING_COOLDOWN_SECONDS,
            up_samples=settings.SCALING_UP_SAMPLES,
            down_samples=settings.SCALING_DOWN_SAMPLES,
        )


@dataclass(frozen=True)
class ScalingDecision:
    action: str          # scale_up | scale_down | hold
    current: int
    target: int
    reason: str
    utilization: float
    at: float

    def to_dict(self) -> dict:
        return {"action": self.action, "current": self.current, "target": self.target,
                "reason": self.reason, "utilization": round(self.utilization, 3)}


class ScalingManager:
    def __init__(self, policy: ScalingPolicy, current_workers: Optional[int] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.policy = policy
        self._clock = clock
        start = policy.min_workers if current_workers is None else current_workers
        self.current = min(max(start, policy.min_workers), policy.max_workers)
        self._high_streak = 0
        self._low_streak = 0
        self._last_change: Optional[float] = None
        self._stopped = False
        self.last_decision: Optional[ScalingDecision] = None
        self.history: deque = deque(maxlen=HISTORY_SIZE)

    def _decide(self, action: str, target: int, reason: str, utilization: float, now: float) -> ScalingDecision:
        decision = ScalingDecision(action, self.current, target, reason, utilization, now)
        self.last_decision = decision
        if action != "hold":
            self.history.append(decision)
            self.current = target
            self._last_change = now
            self._high_streak = self._low_streak = 0
            logger.info(f"[SCALING] {action}: {decision.current} → {target} workers ({reason})")
        return decision

    def observe(self, utilization: float, now: Optional[float] = None) -> ScalingDecision:
        now = self._clock() if now is None else now
        p = self.policy

        if utilization >= p.scale_up_threshold:
            self._high_streak += 1
            self._low_streak = 0
        elif utilization <= p.scale_down_threshold:
            self._low_streak += 1
            self._high_streak = 0
        else:
            self._high_streak = self._low_streak = 0
            return self._decide("hold", self.current, "within_band", utilization, now)

        if self._last_change is not None and now - self._last_change < p.cooldown_seconds:
            return self._decide("hold", self.current, "cooldown", utilization, now)

        if self._high_streak:
            if self.current >= p.max_workers:
                return self._decide("hold", self.current, "at_max", utilization, now)
            if self._high_streak < p.up_samples:
                return self._decide("hold", self.current, "awaiting_samples", utilization, now)
            target = min(self.current + p.step, p.max_workers)
            return self._decide("scale_up", target, f"utilization {utilization:.2f} >= {p.scale_up_threshold}",
                                utilization, now)

        if self.current <= p.min_workers:
            return self._decide("hold", self.current, "at_min", utilization, now)
        if self._low_streak < p.down_samples:
            return self._decide("hold", self.current, "awaiting_samples", utilization, now)
        target = max(self.current - p.step, p.min_workers)
        return self._decide("scale_down", target, f"utilization {utilization:.2f} <= {p.scale_down_threshold}",
                            utilization, now)

    def stop(self):
        self._stopped = True

    async def run(self, measure: Callable[[], float],
                  apply: Callable[[int], Union[None, Awaitable[None]]],
                  interval: float = settings.SCALING_INTERVAL_SECONDS):
        """Periodic control loop. measure() gives utilization, apply(n) resizes the pool."""
        self._stopped = False
        while not self._stopped:
            try:
                decision = self.observe(measure())
                if decision.action != "hold":
                    outcome = apply(decision.target)
                    if asyncio.iscoroutine(outcome):
                        await outcome
            except Exception as e:
                logger.error(f"[SCALING] Control loop error: {e}", exc_info=True)
            await asyncio.sleep(interval)
