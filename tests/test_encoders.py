import numpy as np
import pytest

from bionet import EngineConfig, BioEngine, classify_token, tokenize
from bionet.encoders import downsample
from bionet.entities import ABSTRACT, CORE, FUNCTION, SYNTAX


def test_tokenize_splits_words_and_punctuation():
    assert tokenize("Hallo, wie geht's?") == ["Hallo", ",", "wie", "geht", "s", "?"]
    assert tokenize("Größe über alles!") == ["Größe", "über", "alles", "!"]


def test_classify_token(config):
    assert classify_token(".", config) == SYNTAX
    assert classify_token("the", config) == FUNCTION
    assert classify_token("Der", config) == FUNCTION
    assert classify_token("Photosynthese", config) == ABSTRACT
    assert classify_token("Hund", config) == CORE


def test_single_word_creates_one_concept_and_no_synapse(engine):
    result = engine.process_text("HUND", now=0.0)

    hund = engine.store.find_by_label("HUND")
    assert len(result.created) == 1
    assert hund is not None
    assert hund.region_id == CORE
    assert engine.store.labels() == ["HUND"]
    assert engine.store.synapse_count == 0


def test_two_words_create_one_directed_synapse(engine, config):
    engine.process_text("DER HUND", now=0.0)

    der = engine.store.find_by_label("DER")
    hund = engine.store.find_by_label("HUND")
    assert der.region_id == FUNCTION
    assert engine.store.synapse_count == 1
    synapse = der.synapse_to(hund.id)
    assert synapse.weight == config.conversational_increment
    assert hund.synapse_to(der.id) is None


def test_learning_mode_uses_large_increment(engine, config):
    engine.toggle_learning_mode()
    engine.process_text("DER HUND", now=0.0)

    der = engine.store.find_by_label("DER")
    hund = engine.store.find_by_label("HUND")
    assert der.synapse_to(hund.id).weight == config.learning_increment


def test_repeated_input_reinforces_existing_synapse(engine, config):
    engine.process_text("DER HUND", now=0.0)
    engine.process_text("DER HUND", now=1.0)

    der = engine.store.find_by_label("DER")
    synapse = der.synapse_to(engine.store.find_by_label("HUND").id)
    assert synapse.weight == pytest.approx(2 * config.conversational_increment)
    assert synapse.plasticity == pytest.approx(1.0)
    assert engine.store.synapse_count == 1


def test_rank_gate_applies_in_learning_mode_only(engine):
    engine.toggle_learning_mode()
    result = engine.process_text("Hund der", now=0.0)
    assert result.rejected
    assert engine.store.synapse_count == 0

    engine.toggle_learning_mode()
    result = engine.process_text("Hund der", now=1.0)
    assert not result.rejected
    assert engine.store.synapse_count == 1


def test_strict_layering_gates_conversation():
    engine = BioEngine(EngineConfig(seed=1, initial_core_neurons=0, strict_layering=True))
    engine.process_text("Hund der", now=0.0)
    assert engine.store.synapse_count == 0


def test_learning_mode_never_links_downward(engine):
    engine.toggle_learning_mode()
    engine.process_text("Die Photosynthese braucht Licht. Der Baum wächst, weil er Wasser hat!", now=0.0)

    store = engine.store
    for neuron in store:
        for synapse in neuron.synapses:
            target = store.get(synapse.target_id)
            assert store.region_rank(target.region_id) >= store.region_rank(neuron.region_id)


def test_punctuation_gets_higher_threshold(engine, config):
    engine.process_text("Hallo!", now=0.0)
    mark = engine.store.find_by_label("!")
    assert mark.region_id == SYNTAX
    assert mark.threshold == config.punctuation_threshold


def test_characters_bump_keyboard_neurons(engine, config):
    engine.process_text("ab", now=0.0)
    key = engine.store.find_by_character("A")
    assert key.potential == config.key_bump
    assert key.stress == config.key_stress
    assert engine.store.find_by_character("B").potential == config.key_bump
    assert engine.store.find_by_character("C").potential == 0.0


def test_concept_not_created_at_ceiling():
    config = EngineConfig(seed=1, initial_core_neurons=0, max_neurons=136)
    engine = BioEngine(config)
    assert len(engine.store) == 136

    result = engine.process_text("HUND", now=0.0)

    assert result.created == []
    assert engine.store.find_by_label("HUND") is None
    assert len(engine.store) == 136


def test_visual_encoder_lights_bright_cells(engine, config):
    grid = np.zeros((10, 10))
    grid[0, 0] = 255
    grid[9, 9] = 200
    grid[5, 5] = 100  # Below the brightness threshold

    stimulated = engine.process_image(grid, now=0.0)

    assert stimulated == ["PIX_0", "PIX_99"]
    assert engine.store.find_by_pixel(0).potential == config.pixel_bump
    assert engine.store.find_by_pixel(55).potential == 0.0


def test_visual_encoder_downsamples_large_images(engine):
    image = np.zeros((20, 20, 3))
    image[:2, :2, :] = 255

    assert engine.process_image(image, now=0.0) == ["PIX_0"]


def test_downsample_shapes():
    assert downsample(list(range(100)), 10).shape == (10, 10)
    assert downsample(np.ones((5, 5)), 10).shape == (10, 10)
    with pytest.raises(ValueError):
        downsample([], 10)
    with pytest.raises(ValueError):
        downsample([1, 2, 3], 10)


def test_invalid_image_raises_before_mutation(engine):
    with pytest.raises(ValueError):
        engine.process_image([])
    assert all(n.potential == 0.0 for n in engine.store)
