"""
Engine Configuration
====================

Every constant of the simulation lives in EngineConfig. The physics loop,
structural plasticity, encoders, reinforcement and the curriculum teacher
all read from the same instance, so one dataclass describes a whole run.

Use config_for_scale(scale, **overrides) to start from a preset and tweak
individual parameters.
"""

from dataclasses import dataclass, replace
from typing import Dict, Any


@dataclass
class EngineConfig:
    """
    Configuration for the BioNet engine.

    All hyperparameters are exposed here for easy experimentation.
    """
    # ==========================================================================
    # RANDOMNESS
    # ==========================================================================
    seed: int = 42  # Drives positions, wiring and teacher pacing

    # ==========================================================================
    # MEMBRANE PHYSICS
    # ==========================================================================
    decay_factor: float = 0.92  # Potential multiplier per tick
    hyperpolarization: float = -10.0  # Potential right after a spike
    refractory_ticks: int = 8
    compressed_refractory_ticks: int = 2  # Compressed symbols recover faster
    stress_per_fire: float = 1.0
    excitation_gain: float = 0.0  # Adrenaline scaling of delivered weight

    # ==========================================================================
    # THRESHOLDS
    # ==========================================================================
    fire_threshold_base: float = 25.0  # Generic neurons
    concept_threshold: float = 20.0
    punctuation_threshold: float = 35.0
    sensory_threshold: float = 10.0
    pixel_threshold: float = 10.0
    compressed_threshold: float = 5.0

    # ==========================================================================
    # SYNAPSES
    # ==========================================================================
    max_weight: float = 10.0
    hebbian_increment: float = 0.1  # "Fire together, wire together" nudge

    # ==========================================================================
    # ENERGY / NEUROMODULATORS
    # ==========================================================================
    energy_cost_per_fire: float = 0.1
    energy_recovery_rate: float = 0.01
    max_energy: float = 1.0
    compressed_max_energy: float = 2.0
    modulator_relaxation: float = 0.01  # Fraction back toward baseline per tick
    dopamine_baseline: float = 0.1
    serotonin_baseline: float = 0.1
    adrenaline_baseline: float = 0.5
    reward_dopamine: float = 0.2
    punish_serotonin: float = 0.3

    # ==========================================================================
    # STRUCTURAL PLASTICITY (NEUROGENESIS / EXPANSION / PRUNING)
    # ==========================================================================
    max_neurons: int = 5000  # Hard ceiling, growth is a no-op beyond it
    growth_stress_threshold: float = 100.0
    expansion_stress_threshold: float = 500.0
    expansion_min_label_length: int = 2  # Label must be LONGER than this
    expansion_children: int = 6
    expansion_base_distance: float = 350.0
    expansion_distance_per_region: float = 80.0
    expansion_radius: float = 120.0
    expansion_target_count: int = 15
    bud_parent_weight: float = 3.0  # parent -> child seed synapse
    bud_child_weight: float = 1.0  # child -> parent seed synapse
    bud_spread: float = 30.0
    prune_interval: float = 10.0  # Seconds between maintenance passes
    prune_weight_floor: float = 0.05
    strict_layering: bool = False  # Apply the rank gate outside learning mode too

    # ==========================================================================
    # PATHWAY COMPRESSION
    # ==========================================================================
    compression_link_weight: float = 5.0
    compression_link_count: int = 8
    compression_min_label_length: int = 3

    # ==========================================================================
    # SLEEP CONSOLIDATION
    # ==========================================================================
    sleep_duration: float = 5.0
    sleep_relaxation: float = 0.5  # Fraction of the way to the region anchor

    # ==========================================================================
    # BOOT TOPOLOGY
    # ==========================================================================
    initial_core_neurons: int = 20
    connection_radius: float = 180.0
    wiring_probability: float = 0.3

    # ==========================================================================
    # INPUT ENCODERS
    # ==========================================================================
    key_bump: float = 80.0
    key_stress: float = 5.0
    concept_bump: float = 60.0
    concept_stress: float = 15.0
    learning_increment: float = 5.0  # Curriculum / trusted ingestion
    conversational_increment: float = 1.5
    plasticity_step: float = 0.1
    long_word_length: int = 8  # Content words longer than this go to ABSTRACT
    visual_grid_size: int = 10
    pixel_brightness_threshold: float = 128.0
    pixel_bump: float = 50.0
    thinking_bump: float = 40.0

    # ==========================================================================
    # REINFORCEMENT
    # ==========================================================================
    reinforcement_window: float = 10.0  # Seconds
    reward_bonus: float = 2.0
    reward_potential: float = 50.0
    punish_penalty: float = 10.0
    punish_inhibition: float = 100.0

    # ==========================================================================
    # OUTPUT
    # ==========================================================================
    output_quiet_period: float = 0.6  # Seconds of silence that end a thought

    # ==========================================================================
    # CURRICULUM TEACHER
    # ==========================================================================
    teacher_patience: int = 50
    teacher_pacing_probability: float = 0.1
    teacher_max_corrections: int = 3  # Per awaited word, then move on
    delegate_timeout: float = 10.0
    delegate_max_sentences: int = 8
    health_weak_floor: float = 0.5

    # ==========================================================================
    # NOTIFICATIONS
    # ==========================================================================
    notification_capacity: int = 256

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return dict(self.__dict__)


SCALE_PRESETS: Dict[str, Dict[str, Any]] = {
    "micro": {"max_neurons": 500, "initial_core_neurons": 5},
    "small": {},
    "large": {"max_neurons": 20000, "initial_core_neurons": 60},
}


def config_for_scale(scale: str = "small", **overrides) -> EngineConfig:
    """
    Build a configuration from a named preset.

    Args:
        scale: "micro", "small" or "large"
        **overrides: Any EngineConfig field

    Returns:
        Configured EngineConfig
    """
    if scale not in SCALE_PRESETS:
        raise ValueError(f"Unknown scale: {scale!r} (expected one of {sorted(SCALE_PRESETS)})")
    config = replace(EngineConfig(), **SCALE_PRESETS[scale])
    return replace(config, **overrides)
