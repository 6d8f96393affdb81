"""
BioNet Engine
=============

Facade that owns one network and everything acting on it:

    stimulus API  -> encoders / reinforcement / teacher
    tick(now)     -> freeze check, sleep wake-up, thinking, physics,
                     structural reaction, utterance harvest, teacher step
    maintenance(now) -> periodic pruning and topic discovery

There are no background timers. The host calls tick() at its frame rate and
maintenance() whenever it likes; maintenance only does work once per
prune_interval. Messages for the host collect in a NotificationQueue that is
drained once per frame.

The engine also acts as the curriculum teacher's student (inject_lesson,
teach_word, has_concept, boost_concept, reinforce, latest_utterance).
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from .config import EngineConfig, config_for_scale
from .consolidation import ConsolidationEngine, ConsolidationReport, SleepManager
from .curriculum import CurriculumTeacher, TeacherStatus
from .delegate import DelegateDispatcher, TextGenerator
from .diagnostics import HealthReport, health_report
from .encoders import CharacterEncoder, EncodeResult, TokenEncoder, VisualEncoder
from .entities import ALPHABET_GRID, CORE, INPUT, VISUAL, NeuronKind, static_regions
from .errors import SnapshotError
from .notifications import Notification, NotificationKind, NotificationQueue, Sender
from .persistence import build_store, export_snapshot, load_engine, save_engine
from .physics import OutputBuffer, PhysicsLoop
from .plasticity import PruneReport, StructuralPlasticity
from .reinforcement import ReinforcementKind, ReinforcementReport, ReinforcementSystem
from .store import EntityStore

logger = logging.getLogger(__name__)


class EngineMode(Enum):
    IDLE = "IDLE"
    THINKING = "THINKING"
    FROZEN = "FROZEN"
    SLEEPING = "SLEEPING"


@dataclass
class EngineStats:
    """Per-tick readout for the host."""
    neuron_count: int
    synapse_count: int
    region_count: int
    mode: EngineMode
    tick: int
    teacher_status: TeacherStatus
    latest_message: Optional[str] = None


KEY_SPACING = 40.0
PIXEL_SPACING = 20.0


class BioEngine:
    """
    A growing spiking network with its encoders, plasticity and teacher.
    """

    def __init__(self, config: Optional[EngineConfig] = None, generator: Optional[TextGenerator] = None):
        self.config = config or EngineConfig()
        cfg = self.config

        self.rng = np.random.default_rng(cfg.seed)
        self.notifications = NotificationQueue(cfg.notification_capacity)

        self.generator = generator
        self.dispatcher = (
            DelegateDispatcher(generator, timeout=cfg.delegate_timeout)
            if generator is not None else None
        )

        self.output = OutputBuffer(cfg.output_quiet_period)
        self.physics = PhysicsLoop(cfg, self.output)
        self.sleep_manager = SleepManager(cfg.sleep_duration)
        self.teacher = CurriculumTeacher(cfg, self.rng, self.notifications, self.dispatcher)

        # Modes
        self.frozen = False
        self.thinking = False
        self.learning_mode = False

        self.tick_count = 0
        self.last_maintenance: Optional[float] = None
        self.utterance_seq = 0
        self.last_utterance: Optional[str] = None

        self._attach(self._boot_store())
        logger.info(
            "BioEngine ready: %d neurons, %d synapses, %d regions",
            len(self.store), self.store.synapse_count, len(self.store.regions),
        )

    # ==========================================================================
    # CONSTRUCTION
    # ==========================================================================

    def _boot_store(self) -> EntityStore:
        store = EntityStore(self.config, self.rng)
        for region in static_regions():
            store.add_region(region)
        self._ensure_sensory(store)
        for _ in range(self.config.initial_core_neurons):
            store.create_neuron(CORE)
        for neuron in store:
            store.wire_neighbors(neuron)
        return store

    def _ensure_sensory(self, store: EntityStore) -> int:
        """Create any missing keyboard and retina neurons. Returns how many."""
        created = 0
        keys = store.get_region(INPUT)
        for row_idx, row in enumerate(ALPHABET_GRID):
            for col_idx, char in enumerate(row):
                if store.find_by_character(char) is not None:
                    continue
                store.create_neuron(
                    INPUT,
                    neuron_id=f"KEY_{char}",
                    character=char,
                    x=keys.x - 180.0 + col_idx * KEY_SPACING + row_idx * 10.0,
                    y=keys.y - 60.0 + row_idx * KEY_SPACING,
                )
                created += 1

        retina = store.get_region(VISUAL)
        size = self.config.visual_grid_size
        offset = (size - 1) * PIXEL_SPACING / 2
        for index in range(size * size):
            if store.find_by_pixel(index) is not None:
                continue
            row, col = divmod(index, size)
            store.create_neuron(
                VISUAL,
                neuron_id=f"PIX_{index}",
                pixel_index=index,
                x=retina.x - offset + col * PIXEL_SPACING,
                y=retina.y - offset + row * PIXEL_SPACING,
            )
            created += 1
        return created

    def _attach(self, store: EntityStore) -> None:
        """Bind every store-facing component to store."""
        cfg = self.config
        self.store = store
        self.plasticity = StructuralPlasticity(cfg, store, self.rng, self.notifications)
        self.consolidation = ConsolidationEngine(cfg, store, self.plasticity)
        self.character_encoder = CharacterEncoder(cfg, store)
        self.token_encoder = TokenEncoder(cfg, store, self.plasticity)
        self.visual_encoder = VisualEncoder(cfg, store)
        self.reinforcement = ReinforcementSystem(cfg, store)

    @staticmethod
    def _now(now: Optional[float]) -> float:
        return time.time() if now is None else now

    # ==========================================================================
    # STIMULUS API
    # ==========================================================================

    def process_text(self, text: str, now: Optional[float] = None) -> EncodeResult:
        """
        Feed text to the character and token encoders.

        Args:
            text: Raw input
            now: Wall time (seconds), defaults to time.time()

        Returns:
            EncodeResult of the token pass
        """
        if not isinstance(text, str):
            raise ValueError(f"Text input must be a string, got {type(text).__name__}")
        if self.frozen:
            return EncodeResult()
        now = self._now(now)
        self.character_encoder.encode(text)
        result = self.token_encoder.encode(text, now, learning_mode=self.learning_mode)
        for nid in self.plasticity.compress_pathways():
            logger.info("[GROWTH] '%s' compressed into a symbol", self.store.get(nid).label)
        return result

    def process_image(self, grid: Sequence, now: Optional[float] = None) -> List[str]:
        """Stimulate the retina with a brightness grid; returns stimulated pixel ids."""
        if self.frozen:
            return []
        return self.visual_encoder.encode(grid)

    def apply_reinforcement(
        self, kind: Union[str, ReinforcementKind], now: Optional[float] = None
    ) -> ReinforcementReport:
        kind = ReinforcementKind.parse(kind)
        now = self._now(now)
        report = self.reinforcement.apply(kind, now)
        self.notifications.push(
            NotificationKind.REINFORCEMENT,
            f"{kind.value}: {report.neurons_affected} neurons, "
            f"{report.synapses_adjusted} synapses adjusted, {report.synapses_pruned} pruned",
            now,
        )
        return report

    def start_curriculum(self, topic: str, now: Optional[float] = None) -> bool:
        return self.teacher.start(topic, self, self._now(now))

    def stop_curriculum(self, now: Optional[float] = None) -> None:
        self.teacher.stop(self._now(now))

    def toggle_learning_mode(self) -> bool:
        self.learning_mode = not self.learning_mode
        return self.learning_mode

    def freeze(self) -> None:
        self.frozen = True

    def unfreeze(self) -> None:
        self.frozen = False

    def toggle_freeze(self) -> bool:
        self.frozen = not self.frozen
        return self.frozen

    def start_thinking(self) -> None:
        """Start thinking; a frozen engine is unfrozen first."""
        self.frozen = False
        self.thinking = True
        self.output.clear()

    def stop_thinking(self) -> None:
        self.thinking = False

    def sleep(self, now: Optional[float] = None) -> Optional[ConsolidationReport]:
        """
        Enter sleep and consolidate.

        Returns:
            The consolidation report, or None if already asleep
        """
        now = self._now(now)
        if not self.sleep_manager.enter_sleep(now):
            return None
        self.output.clear()
        report = self.consolidation.consolidate()
        self.notifications.push(
            NotificationKind.SLEEP_STARTED,
            f"SLEEPING: removed {report.synapses_removed} synapses and "
            f"{report.neurons_removed} neurons",
            now,
        )
        return report

    # ==========================================================================
    # SNAPSHOTS
    # ==========================================================================

    def export_snapshot(self, now: Optional[float] = None) -> Dict[str, Any]:
        return export_snapshot(self.store, timestamp=self._now(now))

    def restore_snapshot(self, data: Union[Dict[str, Any], str, bytes]) -> None:
        """
        Replace the network with a snapshot.

        Raises:
            SnapshotError: The snapshot is malformed; the network is unchanged
        """
        store = build_store(data, self.config, self.rng)
        self._ensure_sensory(store)
        self._attach(store)
        self.output.clear()

    def import_snapshot(self, data: Union[Dict[str, Any], str, bytes], now: Optional[float] = None) -> bool:
        """
        Replace the network with a snapshot, reporting failure instead of raising.

        Returns:
            True if the snapshot was loaded
        """
        now = self._now(now)
        try:
            self.restore_snapshot(data)
        except SnapshotError as e:
            logger.warning("[SNAPSHOT] Import rejected: %s", e)
            self.notifications.push(NotificationKind.SNAPSHOT_FAILED, f"LOAD FAILED: {e}", now)
            return False
        self.notifications.push(
            NotificationKind.SNAPSHOT_LOADED,
            f"SNAPSHOT LOADED: {len(self.store)} neurons, {self.store.synapse_count} synapses",
            now,
        )
        return True

    def attach_generator(self, generator: Optional[TextGenerator]) -> None:
        """Swap the teacher's text generator (None detaches it)."""
        if self.dispatcher is not None:
            self.dispatcher.shutdown()
        self.generator = generator
        self.dispatcher = (
            DelegateDispatcher(generator, timeout=self.config.delegate_timeout)
            if generator is not None else None
        )
        self.teacher.dispatcher = self.dispatcher

    def save(self, filepath: str, serialization: str = "snapshot") -> str:
        return save_engine(self, filepath, serialization=serialization)

    @classmethod
    def load(
        cls, filepath: str, config: Optional[EngineConfig] = None, generator: Optional[TextGenerator] = None
    ) -> "BioEngine":
        return load_engine(filepath, config=config, generator=generator)

    # ==========================================================================
    # SCHEDULING
    # ==========================================================================

    def tick(self, now: Optional[float] = None) -> EngineStats:
        """
        Advance the engine by one tick.

        A frozen engine does nothing at all. A sleeping engine only does
        bookkeeping until the sleep window is over.
        """
        if self.frozen:
            return self.stats()
        now = self._now(now)

        if self.sleep_manager.should_wake(now):
            self.sleep_manager.wake_up()
            self.notifications.push(NotificationKind.SLEEP_FINISHED, "AWAKE", now)
            logger.info("[SLEEP] Woke up")
        sleeping = self.sleep_manager.is_sleeping

        self.tick_count += 1
        if self.thinking and not sleeping:
            self._think()

        result = self.physics.step(
            self.store, now, self.tick_count,
            propagate=not sleeping,
            buffer_output=not self.thinking,
        )

        for nid in result.fired:
            neuron = self.store.get(nid)
            if neuron is None:
                continue
            try:
                self.plasticity.react(neuron, now)
            except Exception:
                logger.exception("Structural update failed for neuron %s", nid)

        sentence = self.output.flush_if_quiet(now)
        if sentence:
            self._emit(sentence, now)

        self.teacher.step(self, now)
        return self.stats()

    def _think(self) -> None:
        concepts = [n for n in self.store if n.kind == NeuronKind.CONCEPT]
        if concepts:
            neuron = concepts[int(self.rng.integers(len(concepts)))]
            neuron.potential += self.config.thinking_bump

    def _emit(self, sentence: str, now: float) -> None:
        self.utterance_seq += 1
        self.last_utterance = sentence
        self.notifications.push(NotificationKind.UTTERANCE, sentence, now, sender=Sender.SELF)

    def maintenance(self, now: Optional[float] = None) -> Optional[PruneReport]:
        """
        Periodic pruning and topic discovery.

        The first call starts the clock; afterwards work is done at most once
        per prune_interval. A frozen engine skips maintenance without
        touching the clock.

        Returns:
            PruneReport when a pass ran, else None
        """
        if self.frozen:
            return None
        now = self._now(now)
        if self.last_maintenance is None:
            self.last_maintenance = now
            return None
        if now - self.last_maintenance < self.config.prune_interval:
            return None
        self.last_maintenance = now

        report = self.plasticity.prune()
        self.plasticity.discover_topics(now)
        if not report.empty:
            self.notifications.push(
                NotificationKind.PRUNED,
                f"PRUNED: {report.synapses_removed} synapses, {report.neurons_removed} neurons",
                now,
            )
        return report

    # ==========================================================================
    # READOUTS
    # ==========================================================================

    @property
    def mode(self) -> EngineMode:
        if self.frozen:
            return EngineMode.FROZEN
        if self.sleep_manager.is_sleeping:
            return EngineMode.SLEEPING
        if self.thinking:
            return EngineMode.THINKING
        return EngineMode.IDLE

    def stats(self) -> EngineStats:
        latest = self.notifications.latest
        return EngineStats(
            neuron_count=len(self.store),
            synapse_count=self.store.synapse_count,
            region_count=len(self.store.regions),
            mode=self.mode,
            tick=self.tick_count,
            teacher_status=self.teacher.status,
            latest_message=latest.text if latest is not None else None,
        )

    def health(self) -> HealthReport:
        return health_report(self.store, self.config, self.teacher)

    def drain_notifications(self) -> List[Notification]:
        return self.notifications.drain()

    def shutdown(self) -> None:
        if self.dispatcher is not None:
            self.dispatcher.shutdown()

    # ==========================================================================
    # STUDENT INTERFACE (used by CurriculumTeacher)
    # ==========================================================================

    def inject_lesson(self, sentence: str, now: float) -> None:
        """Encode one lesson with learning mode forced on for just this sentence."""
        previous = self.learning_mode
        self.learning_mode = True
        try:
            self.process_text(sentence, now)
        finally:
            self.learning_mode = previous

    def teach_word(self, word: str, now: float) -> None:
        self.inject_lesson(word, now)

    def has_concept(self, word: str) -> bool:
        return self.store.find_by_label(word) is not None

    def boost_concept(self, word: str, now: float) -> None:
        neuron = self.store.find_by_label(word)
        if neuron is not None:
            neuron.potential += self.config.concept_bump

    def reinforce(self, kind: ReinforcementKind, now: float) -> ReinforcementReport:
        return self.reinforcement.apply(kind, now)

    def latest_utterance(self):
        return self.utterance_seq, self.last_utterance


def create_engine(scale: str = "small", generator: Optional[TextGenerator] = None, **overrides) -> BioEngine:
    """
    Create an engine from a scale preset.

    Args:
        scale: "micro", "small" or "large"
        generator: Optional text generator for the teacher
        **overrides: Any EngineConfig field

    Returns:
        Configured BioEngine
    """
    return BioEngine(config_for_scale(scale, **overrides), generator=generator)
