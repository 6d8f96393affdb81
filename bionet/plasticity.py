"""
Structural Plasticity
=====================

The network grows where it is stressed and shrinks where it is unused.

- Neurogenesis: a neuron whose stress passes the growth threshold buds a
  child in its own region, linked back and forth with strong seed synapses.
- Region expansion: a concept neuron with a long enough label that passes
  the much higher expansion threshold founds a region of its own, moves
  there and is surrounded by a handful of child neurons.
- Pruning: weak synapses are removed, then non-sensory neurons with no
  synapse in either direction.
- Compression: heavily used concept neurons become cheap-to-fire symbols.

A hard neuron ceiling bounds growth; requests beyond it are no-ops.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .config import EngineConfig
from .entities import Neuron, NeuronKind, Region
from .notifications import NotificationKind, NotificationQueue
from .store import EntityStore

logger = logging.getLogger(__name__)


@dataclass
class PruneReport:
    """Counts removed by one pruning pass."""
    synapses_removed: int = 0
    neurons_removed: int = 0

    @property
    def empty(self) -> bool:
        return self.synapses_removed == 0 and self.neurons_removed == 0


class StructuralPlasticity:
    """
    Growth, expansion, pruning and compression over an EntityStore.
    """

    def __init__(
        self,
        config: EngineConfig,
        store: EntityStore,
        rng: np.random.Generator,
        notifications: NotificationQueue,
    ):
        self.config = config
        self.store = store
        self.rng = rng
        self.notifications = notifications

        self.neurons_created = 0
        self.neurons_pruned = 0
        self.regions_created = 0

    # ========== Growth ==========

    def react(self, neuron: Neuron, now: float) -> None:
        """Apply whatever structural change the neuron's stress calls for."""
        if neuron.is_sensory or neuron.id not in self.store:
            return
        cfg = self.config
        if neuron.kind == NeuronKind.CONCEPT and len(neuron.label) > cfg.expansion_min_label_length:
            if neuron.stress > cfg.expansion_stress_threshold:
                self.expand_region(neuron, now)
            return
        if neuron.stress > cfg.growth_stress_threshold:
            self.bud(neuron)

    def bud(self, parent: Neuron) -> Optional[Neuron]:
        """
        Neurogenesis: spawn a child next to the parent.

        Returns:
            The child, or None when the neuron ceiling is reached
        """
        child = self._spawn_child(parent.region_id, parent)
        if child is None:
            return None
        parent.stress = 0.0
        logger.debug("[GROWTH] %s budded %s in %s", parent.id, child.id, parent.region_id)
        return child

    def _spawn_child(self, region_id: str, parent: Neuron) -> Optional[Neuron]:
        if self.store.at_capacity:
            return None
        spread = self.config.bud_spread
        x = parent.x + (self.rng.random() - 0.5) * 2 * spread
        y = parent.y + (self.rng.random() - 0.5) * 2 * spread
        child = self.store.create_neuron(region_id, x=x, y=y)

        # Bi-directional seed link for context
        self.store.connect(parent, child, self.config.bud_parent_weight, plasticity=1.0, enforce_rank=False)
        self.store.connect(child, parent, self.config.bud_child_weight, plasticity=0.5, enforce_rank=False)
        self.store.wire_neighbors(child)
        self.neurons_created += 1
        return child

    def expand_region(self, seed: Neuron, now: float) -> Optional[Region]:
        """
        Found a new region around a stressed concept neuron.

        The region is placed outward from the seed at a distance that grows
        with the number of regions, the seed migrates into it and child
        neurons fill it.

        Returns:
            The new region, or None if one with that name already exists
        """
        if seed.kind != NeuronKind.CONCEPT:
            return None
        region_id = seed.label.upper()
        if region_id in self.store.regions:
            return None

        cfg = self.config
        angle = self.rng.random() * 2 * np.pi
        dist = cfg.expansion_base_distance + len(self.store.regions) * cfg.expansion_distance_per_region
        region = Region(
            id=region_id,
            label=region_id,
            x=float(seed.x + np.cos(angle) * dist),
            y=float(seed.y + np.sin(angle) * dist),
            radius=cfg.expansion_radius,
            rank=self.store.region_rank(seed.region_id),
            target_count=cfg.expansion_target_count,
            dynamic=True,
        )
        self.store.add_region(region)
        self.regions_created += 1

        self.store.migrate_neuron(seed, region_id)
        seed.x = region.x
        seed.y = region.y
        seed.stress = 0.0

        for _ in range(cfg.expansion_children):
            if self._spawn_child(region_id, seed) is None:
                break

        self.notifications.push(
            NotificationKind.REGION_CREATED, f"NEW REGION FORMED: {region_id}", now
        )
        logger.info("[GROWTH] Region %s formed around '%s'", region_id, seed.label)
        return region

    def discover_topics(self, now: float) -> List[Region]:
        """Expand every concept that is already past the expansion threshold."""
        created = []
        for neuron in self.store:
            if neuron.kind != NeuronKind.CONCEPT:
                continue
            if len(neuron.label) <= self.config.expansion_min_label_length:
                continue
            if neuron.stress > self.config.expansion_stress_threshold:
                region = self.expand_region(neuron, now)
                if region is not None:
                    created.append(region)
        return created

    # ========== Pruning ==========

    def prune_weak_synapses(self, floor: Optional[float] = None) -> int:
        """Drop synapses whose weight is below the floor (or not positive)."""
        if floor is None:
            floor = self.config.prune_weight_floor
        removed = 0
        for neuron in self.store:
            before = len(neuron.synapses)
            neuron.synapses = [s for s in neuron.synapses if s.weight >= floor and s.weight > 0]
            removed += before - len(neuron.synapses)
        return removed

    def remove_orphans(self) -> int:
        """Remove non-sensory neurons with neither outgoing nor incoming synapses."""
        incoming = self.store.incoming_counts()
        orphans = [
            n.id for n in self.store
            if not n.is_sensory and not n.synapses and incoming.get(n.id, 0) == 0
        ]
        for nid in orphans:
            self.store.remove_neuron(nid)
        self.neurons_pruned += len(orphans)
        return len(orphans)

    def prune(self, floor: Optional[float] = None) -> PruneReport:
        """Weak synapses first, then the neurons left without any."""
        report = PruneReport(
            synapses_removed=self.prune_weak_synapses(floor),
        )
        report.neurons_removed = self.remove_orphans()
        if not report.empty:
            logger.info(
                "[PRUNE] Removed %d synapses and %d neurons",
                report.synapses_removed, report.neurons_removed,
            )
        return report

    # ========== Compression ==========

    def compress_pathways(self) -> List[str]:
        """
        Turn heavily connected concept neurons into compressed symbols.

        Returns:
            Ids of neurons compressed by this pass
        """
        cfg = self.config
        compressed = []
        for neuron in self.store:
            if neuron.compressed or neuron.kind != NeuronKind.CONCEPT:
                continue
            if len(neuron.label) <= cfg.compression_min_label_length:
                continue
            strong = sum(1 for s in neuron.synapses if s.weight > cfg.compression_link_weight)
            if strong > cfg.compression_link_count:
                neuron.compressed = True
                neuron.energy = cfg.compressed_max_energy
                neuron.threshold = cfg.compressed_threshold
                compressed.append(neuron.id)
        return compressed
