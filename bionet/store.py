"""
Entity Store

Owns every neuron, synapse and region of the network.

Neurons are kept in a dict keyed by id, which doubles as the creation-order
iteration sequence used by the physics loop and as the hash index from id to
storage slot. Secondary indices resolve character, pixel and label tags.

Synapses hold target ids, not references, so removing a neuron has to scan
every other neuron and drop the edges that point at it.
"""

import logging
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from .config import EngineConfig
from .entities import (
    Neuron, NeuronKind, Neuromodulator, Region, Synapse, SYNTAX
)

logger = logging.getLogger(__name__)


class EntityStore:
    """
    Arena of neurons and regions with tag lookup and structural mutation.
    """

    def __init__(self, config: EngineConfig, rng: np.random.Generator):
        self.config = config
        self.rng = rng

        self.neurons: Dict[str, Neuron] = {}
        self.regions: Dict[str, Region] = {}

        # Tag indices (tag -> neuron id)
        self._by_label: Dict[str, str] = {}
        self._by_character: Dict[str, str] = {}
        self._by_pixel: Dict[int, str] = {}

        self._next_id = 0

    # ========== Regions ==========

    def add_region(self, region: Region) -> Region:
        if region.id in self.regions:
            raise ValueError(f"Region already exists: {region.id}")
        self.regions[region.id] = region
        return region

    def get_region(self, region_id: str) -> Optional[Region]:
        return self.regions.get(region_id)

    def region_rank(self, region_id: str) -> int:
        region = self.regions.get(region_id)
        return region.rank if region is not None else 0

    def neurons_in_region(self, region_id: str) -> List[Neuron]:
        """Get all neurons in a specific region."""
        return [n for n in self.neurons.values() if n.region_id == region_id]

    def random_position(self, region: Region) -> Tuple[float, float]:
        """Random point inside a region's disc."""
        angle = self.rng.random() * 2 * np.pi
        dist = self.rng.random() * region.radius * 0.9
        return (
            float(region.x + np.cos(angle) * dist),
            float(region.y + np.sin(angle) * dist),
        )

    # ========== Neurons ==========

    def __len__(self) -> int:
        return len(self.neurons)

    def __iter__(self) -> Iterator[Neuron]:
        return iter(list(self.neurons.values()))

    def __contains__(self, neuron_id: str) -> bool:
        return neuron_id in self.neurons

    def get(self, neuron_id: str) -> Optional[Neuron]:
        return self.neurons.get(neuron_id)

    @property
    def synapse_count(self) -> int:
        return sum(len(n.synapses) for n in self.neurons.values())

    @property
    def at_capacity(self) -> bool:
        return len(self.neurons) >= self.config.max_neurons

    def default_threshold(self, kind: NeuronKind, region_id: str) -> float:
        """Firing threshold a neuron of this kind gets in this region."""
        cfg = self.config
        if kind == NeuronKind.SENSORY:
            return cfg.sensory_threshold
        if kind == NeuronKind.PIXEL:
            return cfg.pixel_threshold
        if kind == NeuronKind.CONCEPT:
            return cfg.punctuation_threshold if region_id == SYNTAX else cfg.concept_threshold
        return cfg.fire_threshold_base

    def create_neuron(
        self,
        region_id: str,
        neuron_id: Optional[str] = None,
        character: Optional[str] = None,
        label: Optional[str] = None,
        pixel_index: Optional[int] = None,
        x: Optional[float] = None,
        y: Optional[float] = None,
        threshold: Optional[float] = None,
    ) -> Neuron:
        """
        Create a neuron with default electrical state.

        At most one of character / label / pixel_index may be given; it
        decides the neuron's kind for its whole lifetime.

        Args:
            region_id: Region the neuron starts in
            neuron_id: Explicit id, else a fresh sequential id
            character: Sensory key tag
            label: Concept label
            pixel_index: Retina cell tag
            x, y: Position, else a random point in the region
            threshold: Override, else the kind/region default

        Returns:
            The new neuron
        """
        tags = [t for t in (character, label, pixel_index) if t is not None]
        if len(tags) > 1:
            raise ValueError("A neuron carries at most one tag")
        if region_id not in self.regions:
            raise ValueError(f"Unknown region: {region_id}")

        if character is not None:
            kind = NeuronKind.SENSORY
            if character in self._by_character:
                raise ValueError(f"Character already mapped: {character!r}")
        elif pixel_index is not None:
            kind = NeuronKind.PIXEL
            if pixel_index in self._by_pixel:
                raise ValueError(f"Pixel already mapped: {pixel_index}")
        elif label is not None:
            kind = NeuronKind.CONCEPT
            if label in self._by_label:
                raise ValueError(f"Label already mapped: {label!r}")
        else:
            kind = NeuronKind.GENERIC

        if neuron_id is None:
            neuron_id = self._fresh_id()
        elif neuron_id in self.neurons:
            raise ValueError(f"Neuron id already in use: {neuron_id}")

        if x is None or y is None:
            x, y = self.random_position(self.regions[region_id])

        cfg = self.config
        neuron = Neuron(
            id=neuron_id,
            region_id=region_id,
            kind=kind,
            x=float(x),
            y=float(y),
            character=character,
            label=label,
            pixel_index=pixel_index,
            threshold=threshold if threshold is not None else self.default_threshold(kind, region_id),
            energy=cfg.max_energy,
            modulators={
                Neuromodulator.DOPAMINE: cfg.dopamine_baseline,
                Neuromodulator.SEROTONIN: cfg.serotonin_baseline,
                Neuromodulator.ADRENALINE: cfg.adrenaline_baseline,
            },
        )
        self._insert(neuron)
        return neuron

    def _insert(self, neuron: Neuron) -> None:
        self.neurons[neuron.id] = neuron
        if neuron.kind == NeuronKind.SENSORY:
            self._by_character[neuron.character] = neuron.id
        elif neuron.kind == NeuronKind.PIXEL:
            self._by_pixel[neuron.pixel_index] = neuron.id
        elif neuron.kind == NeuronKind.CONCEPT:
            self._by_label[neuron.label] = neuron.id

    def _fresh_id(self) -> str:
        while True:
            self._next_id += 1
            candidate = f"n{self._next_id}"
            if candidate not in self.neurons:
                return candidate

    def find_by_label(self, label: str) -> Optional[Neuron]:
        nid = self._by_label.get(label)
        return self.neurons.get(nid) if nid is not None else None

    def find_by_character(self, character: str) -> Optional[Neuron]:
        nid = self._by_character.get(character)
        return self.neurons.get(nid) if nid is not None else None

    def find_by_pixel(self, pixel_index: int) -> Optional[Neuron]:
        nid = self._by_pixel.get(pixel_index)
        return self.neurons.get(nid) if nid is not None else None

    def labels(self) -> List[str]:
        return list(self._by_label.keys())

    def remove_neuron(self, neuron_id: str) -> int:
        """
        Remove a neuron and every synapse that targets it.

        Returns:
            Number of incoming synapses dropped by the cascade
        """
        neuron = self.neurons.pop(neuron_id, None)
        if neuron is None:
            return 0

        if neuron.kind == NeuronKind.SENSORY:
            self._by_character.pop(neuron.character, None)
        elif neuron.kind == NeuronKind.PIXEL:
            self._by_pixel.pop(neuron.pixel_index, None)
        elif neuron.kind == NeuronKind.CONCEPT:
            self._by_label.pop(neuron.label, None)

        dropped = 0
        for other in self.neurons.values():
            before = len(other.synapses)
            other.synapses = [s for s in other.synapses if s.target_id != neuron_id]
            dropped += before - len(other.synapses)
        return dropped

    def incoming_counts(self) -> Dict[str, int]:
        """Count of live incoming synapses per neuron id (full scan)."""
        counts: Dict[str, int] = {nid: 0 for nid in self.neurons}
        for neuron in self.neurons.values():
            for syn in neuron.synapses:
                if syn.target_id in counts:
                    counts[syn.target_id] += 1
        return counts

    # ========== Connections ==========

    def rank_allows(self, source: Neuron, target: Neuron) -> bool:
        """Connections may only run from lower-or-equal to higher-or-equal rank."""
        return self.region_rank(source.region_id) <= self.region_rank(target.region_id)

    def connect(
        self,
        source: Neuron,
        target: Neuron,
        weight: float,
        plasticity: float = 0.5,
        enforce_rank: bool = True,
    ) -> Optional[Synapse]:
        """
        Create source -> target unless it already exists.

        Returns:
            The new or existing synapse, or None when the edge is not allowed
        """
        if source.id == target.id:
            return None
        existing = source.synapse_to(target.id)
        if existing is not None:
            return existing
        if enforce_rank and not self.rank_allows(source, target):
            return None
        synapse = Synapse(
            target_id=target.id,
            weight=float(np.clip(weight, 0.0, self.config.max_weight)),
            plasticity=plasticity,
        )
        source.synapses.append(synapse)
        return synapse

    def wire_neighbors(self, source: Neuron, probability: Optional[float] = None) -> int:
        """
        Randomly connect a neuron to the neurons around it.

        Sensory-to-sensory edges are never made and the rank gate always
        applies. Returns the number of synapses created.
        """
        if probability is None:
            probability = self.config.wiring_probability
        radius_sq = self.config.connection_radius ** 2
        created = 0
        for target in list(self.neurons.values()):
            if target.id == source.id:
                continue
            if source.is_sensory and target.is_sensory:
                continue
            dx = target.x - source.x
            dy = target.y - source.y
            if dx * dx + dy * dy >= radius_sq:
                continue
            if self.rng.random() >= probability:
                continue
            if source.synapse_to(target.id) is not None:
                continue
            if self.connect(source, target, weight=float(self.rng.random()), plasticity=0.5):
                created += 1
        return created

    def migrate_neuron(self, neuron: Neuron, region_id: str) -> None:
        """Move a neuron into another region (structural plasticity)."""
        if region_id not in self.regions:
            raise ValueError(f"Unknown region: {region_id}")
        neuron.region_id = region_id
