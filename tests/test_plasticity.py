import math
from dataclasses import replace

import numpy as np
import pytest

from bionet import EntityStore, NotificationKind, NotificationQueue, StructuralPlasticity
from bionet.entities import CORE, INPUT, static_regions


def test_stressed_neuron_buds_a_linked_child(store, plasticity, config):
    parent = store.create_neuron(CORE)
    parent.stress = config.growth_stress_threshold + 1

    plasticity.react(parent, now=0.0)

    assert len(store) == 2
    child = next(n for n in store if n.id != parent.id)
    assert child.region_id == CORE
    assert parent.stress == 0.0
    assert parent.synapse_to(child.id).weight == config.bud_parent_weight
    assert child.synapse_to(parent.id).weight == config.bud_child_weight
    assert plasticity.neurons_created == 1


def test_sensory_neurons_never_grow(store, plasticity):
    key = store.create_neuron(INPUT, character="Q")
    key.stress = 10_000

    plasticity.react(key, now=0.0)

    assert len(store) == 1


def test_growth_is_a_noop_at_the_ceiling(config):
    config = replace(config, max_neurons=1)
    store = EntityStore(config, np.random.default_rng(0))
    for region in static_regions():
        store.add_region(region)
    plasticity = StructuralPlasticity(config, store, np.random.default_rng(0), NotificationQueue())
    parent = store.create_neuron(CORE)
    parent.stress = 500

    assert plasticity.bud(parent) is None
    assert len(store) == 1


def test_region_expansion(store, plasticity, notifications, config):
    seed = store.create_neuron(CORE, label="Elefant")
    origin = (seed.x, seed.y)
    seed.stress = config.expansion_stress_threshold + 1

    plasticity.react(seed, now=3.0)

    region = store.get_region("ELEFANT")
    assert region is not None
    assert region.dynamic
    assert region.rank == store.region_rank(CORE)
    assert seed.region_id == "ELEFANT"
    assert seed.stress == 0.0
    assert len(store.neurons_in_region("ELEFANT")) == 1 + config.expansion_children
    assert all(seed.synapse_to(n.id) for n in store.neurons_in_region("ELEFANT") if n.id != seed.id)

    distance = math.hypot(region.x - origin[0], region.y - origin[1])
    expected = config.expansion_base_distance + len(static_regions()) * config.expansion_distance_per_region
    assert distance == pytest.approx(expected)

    [note] = notifications.drain()
    assert note.kind == NotificationKind.REGION_CREATED
    assert note.text == "NEW REGION FORMED: ELEFANT"

    assert plasticity.expand_region(seed, now=4.0) is None
    assert len(store.regions) == len(static_regions()) + 1


def test_short_labels_bud_instead_of_expanding(store, plasticity, config):
    concept = store.create_neuron(CORE, label="Ei")
    concept.stress = config.expansion_stress_threshold + 1

    plasticity.react(concept, now=0.0)

    assert len(store.regions) == len(static_regions())
    assert len(store) == 2


def test_expansion_candidates_wait_for_the_higher_threshold(store, plasticity, config):
    concept = store.create_neuron(CORE, label="Elefant")
    concept.stress = config.growth_stress_threshold + 1

    plasticity.react(concept, now=0.0)

    assert len(store) == 1
    assert concept.stress == config.growth_stress_threshold + 1


def test_discover_topics(store, plasticity, config):
    store.create_neuron(CORE, label="Sonne").stress = config.expansion_stress_threshold + 1
    store.create_neuron(CORE, label="Mond").stress = 10

    created = plasticity.discover_topics(now=0.0)

    assert [r.id for r in created] == ["SONNE"]


def test_prune_removes_weak_synapses_then_orphans(store, plasticity):
    a = store.create_neuron(CORE)
    b = store.create_neuron(CORE)
    c = store.create_neuron(CORE)
    lonely = store.create_neuron(CORE)
    key = store.create_neuron(INPUT, character="Q")
    store.connect(a, b, 0.01)
    store.connect(b, c, 2.0)

    report = plasticity.prune()

    assert report.synapses_removed == 1
    assert report.neurons_removed == 2
    assert a.id not in store and lonely.id not in store
    assert b.id in store and c.id in store
    assert key.id in store


def test_prune_is_idempotent(store, plasticity):
    a = store.create_neuron(CORE)
    b = store.create_neuron(CORE)
    store.connect(a, b, 0.01)
    store.create_neuron(CORE)

    plasticity.prune()
    second = plasticity.prune()

    assert second.empty


def test_compression(store, plasticity, config):
    sonne = store.create_neuron(CORE, label="Sonne")
    ei = store.create_neuron(CORE, label="Ei")
    for _ in range(config.compression_link_count + 1):
        target = store.create_neuron(CORE)
        store.connect(sonne, target, 6.0)
        store.connect(ei, target, 6.0)

    compressed = plasticity.compress_pathways()

    assert compressed == [sonne.id]
    assert sonne.compressed
    assert sonne.threshold == config.compressed_threshold
    assert sonne.energy == config.compressed_max_energy
    assert not ei.compressed
    assert plasticity.compress_pathways() == []
