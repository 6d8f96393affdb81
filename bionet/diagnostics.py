"""
Network health readout.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from .config import EngineConfig
from .store import EntityStore


@dataclass
class HealthReport:
    neuron_count: int
    synapse_count: int
    isolated_neurons: int  # Non-sensory, no synapse in either direction
    weak_synapses: int  # Weight below the weakness floor
    mean_weight: float
    score: float  # 1.0 = no isolated neurons and no weak synapses
    teacher_status: Optional[str] = None
    silence: int = 0
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


def health_report(store: EntityStore, config: EngineConfig, teacher=None) -> HealthReport:
    incoming = store.incoming_counts()
    isolated = sum(
        1 for n in store
        if not n.is_sensory and not n.synapses and incoming.get(n.id, 0) == 0
    )
    weights = np.array([s.weight for n in store for s in n.synapses], dtype=float)
    weak = int(np.sum(weights < config.health_weak_floor)) if weights.size else 0
    mean_weight = float(weights.mean()) if weights.size else 0.0

    total = len(store) + int(weights.size)
    score = 1.0 - (isolated + weak) / total if total else 1.0

    report = HealthReport(
        neuron_count=len(store),
        synapse_count=int(weights.size),
        isolated_neurons=isolated,
        weak_synapses=weak,
        mean_weight=mean_weight,
        score=score,
    )
    if teacher is not None:
        report.teacher_status = teacher.status.value
        report.silence = teacher.silence
        report.error_code = teacher.error_code
    return report
