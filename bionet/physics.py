"""
Physics / Propagation Loop

Advances the network by one discrete tick:

1. Decay: every potential is multiplied by the decay factor, refractory
   counters count down, energy recovers, neuromodulators relax.
2. Decide: the set of firing neurons is fixed from the decayed state
   (potential > threshold and refractory <= 0), in creation order.
3. Fire: reset to hyperpolarization, start the refractory window, add stress.
4. Propagate: every delivery of the tick is summed first and applied after,
   then the Hebbian nudge looks at the settled target potentials. A target
   can only fire on the NEXT tick, so the outcome never depends on the order
   in which neurons are visited.

Firing concept neurons feed an OutputBuffer that turns a burst of labels
into one utterance after a quiet period.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .config import EngineConfig
from .entities import Neuron, NeuronKind, Neuromodulator, Synapse
from .store import EntityStore

logger = logging.getLogger(__name__)


_SPACE_BEFORE_PUNCT = re.compile(r"\s+([.,!?:;])")
_MISSING_SPACE_AFTER_PUNCT = re.compile(r"([.,!?:;])([^\W\d_])")


@dataclass
class TickResult:
    """What happened during one tick."""
    tick: int
    fired: List[str] = field(default_factory=list)
    deliveries: int = 0
    hebbian_updates: int = 0


class OutputBuffer:
    """
    Collects labels of firing concept neurons into utterances.

    A thought is over once nothing was appended for quiet_period seconds.
    """

    def __init__(self, quiet_period: float = 0.6):
        self.quiet_period = quiet_period
        self.words: List[str] = []
        self.last_append: Optional[float] = None

    def append(self, label: str, now: float) -> None:
        self.words.append(label)
        self.last_append = now

    def clear(self) -> None:
        self.words = []
        self.last_append = None

    def flush_if_quiet(self, now: float) -> Optional[str]:
        """
        Compose and return the buffered utterance if the quiet period passed.

        Returns None while the thought is still going on, or when the
        buffer held nothing worth saying.
        """
        if not self.words or self.last_append is None:
            return None
        if now - self.last_append <= self.quiet_period:
            return None
        sentence = self.compose(self.words)
        self.clear()
        if len(sentence) <= 1:
            return None
        return sentence

    @staticmethod
    def compose(words: List[str]) -> str:
        """
        Join labels into a sentence.

        "Hallo Hallo , wie geht es dir ?" -> "Hallo, wie geht es dir?"
        """
        unique = [w for i, w in enumerate(words) if i == 0 or w != words[i - 1]]
        sentence = " ".join(unique)
        sentence = _SPACE_BEFORE_PUNCT.sub(r"\1", sentence)
        sentence = _MISSING_SPACE_AFTER_PUNCT.sub(r"\1 \2", sentence)
        return sentence


class PhysicsLoop:
    """
    One-tick integrator over an EntityStore.
    """

    def __init__(self, config: EngineConfig, output: Optional[OutputBuffer] = None):
        self.config = config
        self.output = output or OutputBuffer(config.output_quiet_period)

    def step(
        self,
        store: EntityStore,
        now: float,
        tick: int,
        propagate: bool = True,
        buffer_output: bool = True,
    ) -> TickResult:
        """
        Advance the network by one tick.

        Args:
            store: Network to advance
            now: Wall time of this tick (seconds)
            tick: Tick index, recorded on firing neurons
            propagate: False during sleep (bookkeeping only)
            buffer_output: False while thinking (labels are not spoken)

        Returns:
            TickResult with the ids that fired
        """
        result = TickResult(tick=tick)
        neurons = list(store.neurons.values())

        for neuron in neurons:
            self._decay(neuron)

        if not propagate:
            return result

        firing = [
            n for n in neurons
            if n.potential > n.threshold and n.refractory <= 0
        ]

        for neuron in firing:
            self._fire(neuron, now, tick)
            result.fired.append(neuron.id)
            if buffer_output and neuron.kind == NeuronKind.CONCEPT:
                self.output.append(neuron.label, now)

        pending: Dict[str, float] = defaultdict(float)
        contacts: List[Tuple[Synapse, str]] = []
        for neuron in firing:
            try:
                self._collect_deliveries(store, neuron, now, pending, contacts)
            except Exception:
                logger.exception("Propagation failed for neuron %s", neuron.id)

        for target_id, amount in pending.items():
            target = store.get(target_id)
            if target is not None:
                target.potential += amount
        result.deliveries = len(contacts)

        # Hebbian nudge against the settled potentials of this tick
        max_weight = self.config.max_weight
        for syn, target_id in contacts:
            target = store.get(target_id)
            if target is not None and target.potential > target.threshold:
                syn.weight = min(max_weight, syn.weight + self.config.hebbian_increment * syn.plasticity)
                result.hebbian_updates += 1

        return result

    def _decay(self, neuron: Neuron) -> None:
        cfg = self.config
        neuron.potential *= cfg.decay_factor
        if neuron.refractory > 0:
            neuron.refractory -= 1
        neuron.age += 1

        cap = cfg.compressed_max_energy if neuron.compressed else cfg.max_energy
        if neuron.energy < cap:
            neuron.energy = min(cap, neuron.energy + cfg.energy_recovery_rate)

        baselines = {
            Neuromodulator.DOPAMINE: cfg.dopamine_baseline,
            Neuromodulator.SEROTONIN: cfg.serotonin_baseline,
            Neuromodulator.ADRENALINE: cfg.adrenaline_baseline,
        }
        for mod, level in neuron.modulators.items():
            base = baselines[mod]
            neuron.modulators[mod] = level + (base - level) * cfg.modulator_relaxation

    def _fire(self, neuron: Neuron, now: float, tick: int) -> None:
        cfg = self.config
        neuron.last_fired = now
        neuron.last_fired_tick = tick
        neuron.potential = cfg.hyperpolarization
        neuron.refractory = cfg.compressed_refractory_ticks if neuron.compressed else cfg.refractory_ticks
        neuron.stress += cfg.stress_per_fire
        neuron.energy = max(0.0, neuron.energy - cfg.energy_cost_per_fire)

    def _collect_deliveries(
        self,
        store: EntityStore,
        neuron: Neuron,
        now: float,
        pending: Dict[str, float],
        contacts: List[Tuple[Synapse, str]],
    ) -> None:
        gain = 1.0 + self.config.excitation_gain * neuron.modulators.get(Neuromodulator.ADRENALINE, 0.0)
        for syn in neuron.synapses:
            if syn.target_id not in store:
                continue  # Stale reference to a pruned neuron
            pending[syn.target_id] += syn.weight * gain
            syn.last_active = now
            contacts.append((syn, syn.target_id))
