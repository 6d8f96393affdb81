"""
Sleep Consolidation
===================

Explicit, user-triggered maintenance mode.

Entering sleep runs one consolidation pass:
- weak synapses are pruned
- fully orphaned neurons are removed
- neuron positions relax toward their region's anchor

For the rest of the sleep window the physics loop keeps decaying
potentials and counting down refractory periods, but nothing fires and
nothing propagates. Sleep ends on its own after a fixed duration.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import EngineConfig
from .plasticity import StructuralPlasticity
from .store import EntityStore

logger = logging.getLogger(__name__)


@dataclass
class ConsolidationReport:
    """Result of one consolidation pass."""
    synapses_removed: int = 0
    neurons_removed: int = 0
    neurons_relaxed: int = 0


class SleepManager:
    """
    Tracks whether the engine is asleep and when it wakes up.
    """

    def __init__(self, duration: float = 5.0):
        self.duration = duration
        self.is_sleeping = False
        self.started_at: Optional[float] = None
        self.sleep_count = 0

    def enter_sleep(self, now: float) -> bool:
        """
        Enter sleep state.

        Returns:
            False if already asleep
        """
        if self.is_sleeping:
            return False
        self.is_sleeping = True
        self.started_at = now
        self.sleep_count += 1
        return True

    def should_wake(self, now: float) -> bool:
        return self.is_sleeping and self.started_at is not None and now - self.started_at >= self.duration

    def wake_up(self) -> bool:
        """
        Wake up.

        Returns:
            True if woke, False if was already awake
        """
        if not self.is_sleeping:
            return False
        self.is_sleeping = False
        self.started_at = None
        return True

    def remaining(self, now: float) -> float:
        if not self.is_sleeping or self.started_at is None:
            return 0.0
        return max(0.0, self.duration - (now - self.started_at))


class ConsolidationEngine:
    """
    Prunes and tidies the network during sleep.
    """

    def __init__(self, config: EngineConfig, store: EntityStore, plasticity: StructuralPlasticity):
        self.config = config
        self.store = store
        self.plasticity = plasticity

    def consolidate(self) -> ConsolidationReport:
        report = ConsolidationReport()
        report.synapses_removed = self.plasticity.prune_weak_synapses()
        report.neurons_removed = self.plasticity.remove_orphans()
        report.neurons_relaxed = self.relax_positions()
        logger.info(
            "[SLEEP] Consolidated: -%d synapses, -%d neurons, %d repositioned",
            report.synapses_removed, report.neurons_removed, report.neurons_relaxed,
        )
        return report

    def relax_positions(self, fraction: Optional[float] = None) -> int:
        """Move every non-sensory neuron part of the way toward its region's anchor."""
        if fraction is None:
            fraction = self.config.sleep_relaxation
        moved = 0
        for neuron in self.store:
            if neuron.is_sensory:
                continue  # Keyboard and retina layouts are fixed
            region = self.store.get_region(neuron.region_id)
            if region is None:
                continue
            dx = region.x - neuron.x
            dy = region.y - neuron.y
            if dx == 0.0 and dy == 0.0:
                continue
            neuron.x += dx * fraction
            neuron.y += dy * fraction
            moved += 1
        return moved
