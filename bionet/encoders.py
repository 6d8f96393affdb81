"""
Input Encoders

Map external stimuli onto the network:

- CharacterEncoder: each character of raw text bumps its keyboard neuron
- TokenEncoder: words and punctuation marks find or create concept neurons
  and are chained token -> next token with weight-reinforcing synapses
- VisualEncoder: a brightness grid is reduced to 10x10 and every bright
  cell bumps its pixel neuron

Region assignment of a concept is a pure function of the token, so the
same token always lands in the same layer.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import EngineConfig
from .entities import ABSTRACT, CORE, FUNCTION, SYNTAX, Neuron
from .plasticity import StructuralPlasticity
from .store import EntityStore

logger = logging.getLogger(__name__)


# Words (Unicode letters / digits, German umlauts included) or single punctuation marks
TOKEN_PATTERN = re.compile(r"\w+|[.,!?;:]")
PUNCTUATION = frozenset(".,!?;:")

COMMON_WORDS = frozenset({
    # German
    "der", "die", "das", "den", "dem", "des", "ein", "eine", "einen", "einem",
    "einer", "und", "oder", "aber", "ist", "sind", "war", "hat", "haben", "ich",
    "du", "er", "sie", "es", "wir", "ihr", "nicht", "mit", "von", "zu", "in",
    "im", "auf", "an", "für", "wie", "was", "wer", "auch", "so", "noch",
    # English
    "the", "a", "an", "and", "or", "but", "is", "are", "was", "were", "has",
    "have", "i", "you", "he", "she", "it", "we", "they", "not", "with", "of",
    "to", "on", "at", "for", "how", "what", "who", "also", "its", "be", "can",
})


def tokenize(text: str) -> List[str]:
    """Split text into word tokens and standalone punctuation marks."""
    return TOKEN_PATTERN.findall(text)


def classify_token(token: str, config: EngineConfig) -> str:
    """
    Region a concept token belongs to.

    punctuation -> SYNTAX, common word -> FUNCTION,
    long content word -> ABSTRACT, other content word -> CORE
    """
    if token and all(ch in PUNCTUATION for ch in token):
        return SYNTAX
    if token.lower() in COMMON_WORDS:
        return FUNCTION
    if len(token) > config.long_word_length:
        return ABSTRACT
    return CORE


class CharacterEncoder:
    """Keyboard neurons light up for every typed character."""

    def __init__(self, config: EngineConfig, store: EntityStore):
        self.config = config
        self.store = store

    def encode(self, text: str) -> int:
        """
        Bump the sensory neuron of every character in text.

        Returns:
            Number of keystrokes that hit a neuron
        """
        hits = 0
        for char in text.upper():
            neuron = self.store.find_by_character(char)
            if neuron is None:
                continue
            neuron.potential += self.config.key_bump
            neuron.stress += self.config.key_stress
            hits += 1
        return hits


@dataclass
class EncodeResult:
    """What a token pass did to the network."""
    tokens: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    linked: List[Tuple[str, str]] = field(default_factory=list)
    reinforced: List[Tuple[str, str]] = field(default_factory=list)
    rejected: List[Tuple[str, str]] = field(default_factory=list)


class TokenEncoder:
    """
    Word-level concept encoder.

    In learning mode (curriculum or otherwise trusted input) each link gets
    the large learning increment and the region-rank gate is enforced; in
    conversation the small increment is used.
    """

    def __init__(self, config: EngineConfig, store: EntityStore, plasticity: StructuralPlasticity):
        self.config = config
        self.store = store
        self.plasticity = plasticity

    def encode(self, text: str, now: float, learning_mode: bool = False) -> EncodeResult:
        result = EncodeResult(tokens=tokenize(text))
        prev: Optional[Neuron] = None

        for token in result.tokens:
            concept = self.store.find_by_label(token)
            if concept is None:
                concept = self._create_concept(token)
                if concept is None:
                    prev = None
                    continue
                result.created.append(concept.id)

            concept.potential += self.config.concept_bump
            concept.stress += self.config.concept_stress

            if prev is not None and prev.id != concept.id:
                self._link(prev, concept, learning_mode, result)

            self.plasticity.react(concept, now)
            prev = concept

        return result

    def _create_concept(self, token: str) -> Optional[Neuron]:
        if self.store.at_capacity:
            logger.debug("Neuron ceiling reached, concept '%s' not created", token)
            return None
        region_id = classify_token(token, self.config)
        return self.store.create_neuron(region_id, label=token)

    def _link(self, prev: Neuron, concept: Neuron, learning_mode: bool, result: EncodeResult) -> None:
        cfg = self.config
        increment = cfg.learning_increment if learning_mode else cfg.conversational_increment
        existing = prev.synapse_to(concept.id)
        if existing is not None:
            existing.weight = min(cfg.max_weight, existing.weight + increment)
            existing.plasticity = min(1.0, existing.plasticity + cfg.plasticity_step)
            result.reinforced.append((prev.id, concept.id))
            return

        enforce = learning_mode or cfg.strict_layering
        if enforce and not self.store.rank_allows(prev, concept):
            result.rejected.append((prev.id, concept.id))
            return
        self.store.connect(prev, concept, weight=increment, plasticity=0.9, enforce_rank=False)
        result.linked.append((prev.id, concept.id))


def downsample(grid, size: int) -> np.ndarray:
    """
    Reduce a brightness image to a size x size grid.

    Accepts a flat vector of size*size values, a 2D grayscale image or a
    3D colour image (channels averaged). Larger images are block-averaged,
    smaller ones are nearest-neighbour sampled.
    """
    arr = np.asarray(grid, dtype=float)
    if arr.size == 0:
        raise ValueError("Brightness grid is empty")
    if arr.ndim == 1:
        if arr.size != size * size:
            raise ValueError(f"Flat brightness grid needs {size * size} values, got {arr.size}")
        return arr.reshape(size, size)
    if arr.ndim == 3:
        arr = arr.mean(axis=2)
    if arr.ndim != 2:
        raise ValueError(f"Brightness grid must be 1D, 2D or 3D, got {arr.ndim}D")

    h, w = arr.shape
    if (h, w) == (size, size):
        return arr
    if h >= size and w >= size:
        row_blocks = np.array_split(arr, size, axis=0)
        return np.array([
            [block.mean() for block in np.array_split(rows, size, axis=1)]
            for rows in row_blocks
        ])
    rows = (np.arange(size) * h // size).astype(int)
    cols = (np.arange(size) * w // size).astype(int)
    return arr[np.ix_(rows, cols)]


class VisualEncoder:
    """10x10 retina mapped one cell to one pixel neuron."""

    def __init__(self, config: EngineConfig, store: EntityStore):
        self.config = config
        self.store = store

    def encode(self, grid: Sequence) -> List[str]:
        """
        Stimulate the pixel neurons of every bright cell.

        Returns:
            Ids of the stimulated pixel neurons
        """
        cells = downsample(grid, self.config.visual_grid_size).ravel()
        stimulated = []
        for index in np.flatnonzero(cells > self.config.pixel_brightness_threshold):
            neuron = self.store.find_by_pixel(int(index))
            if neuron is None:
                continue
            neuron.potential += self.config.pixel_bump
            stimulated.append(neuron.id)
        return stimulated
