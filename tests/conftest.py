import numpy as np
import pytest

from bionet import BioEngine, EngineConfig, EntityStore, NotificationQueue, StructuralPlasticity
from bionet.entities import static_regions


@pytest.fixture
def config():
    # No random core neurons: a fresh network has no synapses at all
    return EngineConfig(seed=7, initial_core_neurons=0, teacher_pacing_probability=1.0)


@pytest.fixture
def rng(config):
    return np.random.default_rng(config.seed)


@pytest.fixture
def store(config, rng):
    store = EntityStore(config, rng)
    for region in static_regions():
        store.add_region(region)
    return store


@pytest.fixture
def notifications():
    return NotificationQueue()


@pytest.fixture
def plasticity(config, store, rng, notifications):
    return StructuralPlasticity(config, store, rng, notifications)


@pytest.fixture
def engine(config):
    engine = BioEngine(config)
    yield engine
    engine.shutdown()
