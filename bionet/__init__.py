# BioNet - Growing Spiking Network with a Curriculum Teacher
#
# Symbols (keys, words, pixels) become neurons. Hebbian firing wires them,
# stress grows new neurons and whole regions, pruning and sleep tidy up,
# and a small teacher state machine drills lessons into the network.
#
# ARCHITECTURE:
# ├── engine.py          - BioEngine facade, tick() / maintenance()
# ├── store.py           - Neurons, synapses, regions, tag lookup
# ├── physics.py         - Decay, firing, propagation, Hebbian nudge
# ├── plasticity.py      - Neurogenesis, region expansion, pruning
# ├── consolidation.py   - Sleep mode
# ├── encoders.py        - Characters, tokens, brightness grids
# ├── reinforcement.py   - Window-based reward / punish
# ├── curriculum.py      - Teacher state machine + topic table
# ├── delegate.py        - Optional external text generator
# └── persistence.py     - Snapshots (gzip JSON) and full saves (dill)

# =============================================================================
# PRIMARY EXPORTS: Engine
# =============================================================================

from .engine import (
    BioEngine,
    create_engine,  # Primary factory function
    EngineMode,
    EngineStats,
)

from .config import (
    EngineConfig,
    config_for_scale,
    SCALE_PRESETS,
)

# =============================================================================
# SUPPORTING MODULES
# =============================================================================

from .entities import (
    Neuron,
    NeuronKind,
    Neuromodulator,
    Region,
    Synapse,
)

from .store import EntityStore
from .physics import PhysicsLoop, OutputBuffer, TickResult
from .plasticity import StructuralPlasticity, PruneReport
from .consolidation import SleepManager, ConsolidationEngine, ConsolidationReport
from .encoders import (
    tokenize,
    classify_token,
    CharacterEncoder,
    TokenEncoder,
    VisualEncoder,
    EncodeResult,
)
from .reinforcement import ReinforcementKind, ReinforcementSystem, ReinforcementReport

# Teacher
from .curriculum import (
    CurriculumTeacher,
    TeacherStatus,
    TOPIC_TABLE,
    ERROR_STUDENT_SILENT,
    build_curriculum,
    key_concept,
)
from .delegate import HttpTextGenerator, DelegateDispatcher, DelegateResult

# Host-facing plumbing
from .notifications import Notification, NotificationKind, NotificationQueue, Sender
from .diagnostics import HealthReport, health_report
from .persistence import (
    SNAPSHOT_VERSION,
    EnginePersistence,
    export_snapshot,
    build_store,
    save_engine,
    load_engine,
)
from .errors import BioNetError, SnapshotError, DelegateError

__version__ = "1.0.0"

__all__ = [
    # Engine
    'BioEngine',
    'create_engine',
    'EngineMode',
    'EngineStats',
    'EngineConfig',
    'config_for_scale',
    'SCALE_PRESETS',

    # Entities
    'Neuron',
    'NeuronKind',
    'Neuromodulator',
    'Region',
    'Synapse',
    'EntityStore',

    # Dynamics
    'PhysicsLoop',
    'OutputBuffer',
    'TickResult',
    'StructuralPlasticity',
    'PruneReport',
    'SleepManager',
    'ConsolidationEngine',
    'ConsolidationReport',

    # Encoders
    'tokenize',
    'classify_token',
    'CharacterEncoder',
    'TokenEncoder',
    'VisualEncoder',
    'EncodeResult',

    # Reinforcement
    'ReinforcementKind',
    'ReinforcementSystem',
    'ReinforcementReport',

    # Teacher
    'CurriculumTeacher',
    'TeacherStatus',
    'TOPIC_TABLE',
    'ERROR_STUDENT_SILENT',
    'build_curriculum',
    'key_concept',
    'HttpTextGenerator',
    'DelegateDispatcher',
    'DelegateResult',

    # Notifications / diagnostics
    'Notification',
    'NotificationKind',
    'NotificationQueue',
    'Sender',
    'HealthReport',
    'health_report',

    # Persistence
    'SNAPSHOT_VERSION',
    'EnginePersistence',
    'export_snapshot',
    'build_store',
    'save_engine',
    'load_engine',

    # Errors
    'BioNetError',
    'SnapshotError',
    'DelegateError',
]
