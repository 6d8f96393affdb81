"""
Entity Model

Neurons, synapses and regions of the growing network.

- A Neuron carries a NeuronKind decided once at creation. The kind tells
  consumers which payload is meaningful (character, pixel index or concept
  label) so nobody has to probe optional fields.
- A Synapse is owned by its source neuron and points at its target by id.
  There is no incoming index; stale ids are skipped wherever they are read.
- A Region groups neurons and carries the layout rank used to gate the
  direction of new connections (lower-or-equal rank -> higher-or-equal rank).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from enum import Enum


class NeuronKind(Enum):
    """What a neuron stands for."""
    SENSORY = "sensory"    # Keyboard key, tagged with a character
    PIXEL = "pixel"        # Retina cell, tagged with a pixel index
    CONCEPT = "concept"    # Word or punctuation token, tagged with a label
    GENERIC = "generic"    # Untagged association neuron


class Neuromodulator(Enum):
    """Per-neuron chemical levels."""
    DOPAMINE = "dopamine"      # Reward
    SEROTONIN = "serotonin"    # Inhibition
    ADRENALINE = "adrenaline"  # Excitation


# =============================================================================
# REGION IDS
# =============================================================================

INPUT = "INPUT"
VISUAL = "VISUAL"
FUNCTION = "FUNCTION"
CORE = "CORE"
ABSTRACT = "ABSTRACT"
SYNTAX = "SYNTAX"

SENSORY_REGIONS = (INPUT, VISUAL)

# Key layout of the sensory grid (QWERTZ)
ALPHABET_GRID = [
    ['1', '2', '3', '4', '5', '6', '7', '8', '9', '0'],
    ['Q', 'W', 'E', 'R', 'T', 'Z', 'U', 'I', 'O', 'P'],
    ['A', 'S', 'D', 'F', 'G', 'H', 'J', 'K', 'L'],
    ['Y', 'X', 'C', 'V', 'B', 'N', 'M'],
]


@dataclass
class Synapse:
    """Directed, weighted, plastic edge owned by its source neuron."""
    target_id: str
    weight: float
    plasticity: float = 0.5
    last_active: Optional[float] = None  # Wall time of last delivery


@dataclass
class Region:
    """A named cluster of neurons with a layout rank."""
    id: str
    label: str
    x: float
    y: float
    radius: float
    rank: int
    target_count: int
    dynamic: bool = False  # Created at runtime by region expansion


@dataclass
class Neuron:
    """
    Simulated unit with potential / threshold / refractory state.

    Payload fields are only meaningful for the matching kind:
    character -> SENSORY, pixel_index -> PIXEL, label -> CONCEPT.
    """
    id: str
    region_id: str
    kind: NeuronKind = NeuronKind.GENERIC
    x: float = 0.0
    y: float = 0.0

    # Payload
    character: Optional[str] = None
    label: Optional[str] = None
    pixel_index: Optional[int] = None

    # Electrical state
    potential: float = 0.0
    threshold: float = 25.0
    refractory: int = 0  # Ticks left before the neuron may fire again

    # Bookkeeping
    last_fired: Optional[float] = None
    last_fired_tick: Optional[int] = None
    age: int = 0
    stress: float = 0.0
    energy: float = 1.0
    compressed: bool = False
    modulators: Dict[Neuromodulator, float] = field(default_factory=dict)

    # Outgoing connections, at most one per target
    synapses: List[Synapse] = field(default_factory=list)

    @property
    def is_sensory(self) -> bool:
        """Sensory and pixel neurons are permanent input units."""
        return self.kind in (NeuronKind.SENSORY, NeuronKind.PIXEL)

    def synapse_to(self, target_id: str) -> Optional[Synapse]:
        """Outgoing synapse toward target_id, if any."""
        for syn in self.synapses:
            if syn.target_id == target_id:
                return syn
        return None

    def fired_since(self, since: float) -> bool:
        return self.last_fired is not None and self.last_fired >= since


def static_regions() -> List[Region]:
    """Regions created at boot, in rank order."""
    return [
        Region(INPUT, "SENSORY (KEYBOARD)", 0.0, 0.0, 200.0, rank=0, target_count=40),
        Region(VISUAL, "VISUAL (RETINA)", 0.0, 320.0, 150.0, rank=0, target_count=100),
        Region(FUNCTION, "FUNCTION WORDS", 400.0, -320.0, 180.0, rank=1, target_count=30),
        Region(CORE, "ASSOCIATION", 400.0, 0.0, 250.0, rank=2, target_count=50),
        Region(ABSTRACT, "ABSTRACT CONCEPTS", 750.0, 0.0, 200.0, rank=3, target_count=30),
        Region(SYNTAX, "SYNTAX", 400.0, 320.0, 120.0, rank=4, target_count=10),
    ]
