"""
Reinforcement Subsystem

Window-based retroactive credit assignment.

REWARD / PUNISH looks at every non-sensory neuron that fired within the
trailing reinforcement window. For each such neuron:
- REWARD: positive potential burst, dopamine up, every incoming synapse
  that was itself active within the window gains a fixed bonus
- PUNISH: strong inhibition, serotonin up, every such incoming synapse
  loses a fixed penalty and is removed once its weight reaches zero

This is deliberately blunt: no eligibility traces, no temporal difference.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Set, Union

from .config import EngineConfig
from .entities import Neuromodulator
from .store import EntityStore

logger = logging.getLogger(__name__)


class ReinforcementKind(Enum):
    REWARD = "REWARD"
    PUNISH = "PUNISH"

    @classmethod
    def parse(cls, value: Union[str, "ReinforcementKind"]) -> "ReinforcementKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"Unknown reinforcement kind: {value!r}") from None


@dataclass
class ReinforcementReport:
    kind: ReinforcementKind
    neurons_affected: int = 0
    synapses_adjusted: int = 0
    synapses_pruned: int = 0


class ReinforcementSystem:
    """
    Applies REWARD / PUNISH over the recently active sub-circuit.
    """

    def __init__(self, config: EngineConfig, store: EntityStore):
        self.config = config
        self.store = store

        self.rewards_given = 0
        self.punishments_given = 0

    def recently_active(self, now: float) -> Set[str]:
        """Ids of non-sensory neurons that fired within the window."""
        since = now - self.config.reinforcement_window
        return {
            n.id for n in self.store
            if not n.is_sensory and n.fired_since(since)
        }

    def apply(self, kind: Union[str, ReinforcementKind], now: float) -> ReinforcementReport:
        kind = ReinforcementKind.parse(kind)
        cfg = self.config
        since = now - cfg.reinforcement_window
        active = self.recently_active(now)
        report = ReinforcementReport(kind=kind, neurons_affected=len(active))

        for nid in active:
            neuron = self.store.get(nid)
            if kind == ReinforcementKind.REWARD:
                neuron.potential += cfg.reward_potential
                self._raise_modulator(neuron, Neuromodulator.DOPAMINE, cfg.reward_dopamine)
            else:
                neuron.potential -= cfg.punish_inhibition
                self._raise_modulator(neuron, Neuromodulator.SEROTONIN, cfg.punish_serotonin)

        # Incoming synapses are found by scanning every source
        for source in self.store:
            kept = []
            for syn in source.synapses:
                eligible = (
                    syn.target_id in active
                    and syn.last_active is not None
                    and syn.last_active >= since
                )
                if eligible:
                    report.synapses_adjusted += 1
                    if kind == ReinforcementKind.REWARD:
                        syn.weight = min(cfg.max_weight, syn.weight + cfg.reward_bonus)
                    else:
                        syn.weight -= cfg.punish_penalty
                        if syn.weight <= 0:
                            report.synapses_pruned += 1
                            continue
                kept.append(syn)
            source.synapses = kept

        if kind == ReinforcementKind.REWARD:
            self.rewards_given += 1
        else:
            self.punishments_given += 1

        logger.info(
            "[REINFORCE] %s: %d neurons, %d synapses adjusted, %d pruned",
            kind.value, report.neurons_affected, report.synapses_adjusted, report.synapses_pruned,
        )
        return report

    @staticmethod
    def _raise_modulator(neuron, modulator: Neuromodulator, amount: float) -> None:
        level = neuron.modulators.get(modulator, 0.0) + amount
        neuron.modulators[modulator] = min(1.0, max(0.0, level))
