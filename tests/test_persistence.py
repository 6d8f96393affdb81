import copy
import gzip
import json

import pytest

from bionet import BioEngine, EngineConfig, NotificationKind, SnapshotError, build_store, load_engine, save_engine
from bionet.entities import CORE, SYNTAX
from bionet.persistence import MAGIC_HEADER, decode_snapshot, encode_snapshot


@pytest.fixture
def trained():
    engine = BioEngine(EngineConfig(seed=3, initial_core_neurons=10))
    engine.process_text("Der Hund bellt laut.", now=0.0)
    engine.toggle_learning_mode()
    engine.process_text("Die Katze jagt eine Maus!", now=1.0)
    for i in range(20):
        engine.tick(now=1.0 + i / 30)
    return engine


def fingerprint(engine):
    return len(engine.store), engine.store.synapse_count, sorted(engine.store.labels())


def test_snapshot_round_trip(trained, config):
    snapshot = trained.export_snapshot(now=5.0)

    restored = BioEngine(config)
    assert restored.import_snapshot(snapshot)

    assert fingerprint(restored) == fingerprint(trained)
    assert restored.drain_notifications()[-1].kind == NotificationKind.SNAPSHOT_LOADED


def test_snapshot_survives_json(trained, config):
    text = json.dumps(trained.export_snapshot(now=5.0))
    restored = BioEngine(config)
    assert restored.import_snapshot(text)
    assert fingerprint(restored) == fingerprint(trained)


def test_import_derives_region_and_threshold_from_tags(trained, config):
    snapshot = trained.export_snapshot(now=5.0)
    for raw in snapshot["neurons"]:
        if raw["label"] in ("Hund", "!"):
            raw["region_id"] = "ABSTRACT"
            raw["threshold"] = 99.0
        if raw["character"] == "Q":
            raw["region_id"] = "CORE"

    restored = BioEngine(config)
    assert restored.import_snapshot(snapshot)

    hund = restored.store.find_by_label("Hund")
    mark = restored.store.find_by_label("!")
    assert hund.region_id == CORE
    assert hund.threshold == config.concept_threshold
    assert mark.region_id == SYNTAX
    assert mark.threshold == config.punctuation_threshold
    assert restored.store.find_by_character("Q").region_id == "INPUT"


def test_import_keeps_dynamic_regions_and_compression(trained, config):
    seed = trained.store.find_by_label("Katze")
    seed.stress = config.expansion_stress_threshold + 1
    trained.plasticity.react(seed, now=2.0)
    trained.store.find_by_label("Maus").compressed = True

    restored = BioEngine(config)
    assert restored.import_snapshot(trained.export_snapshot(now=5.0))

    region = restored.store.get_region("KATZE")
    assert region is not None and region.dynamic
    assert restored.store.find_by_label("Katze").region_id == "KATZE"
    maus = restored.store.find_by_label("Maus")
    assert maus.compressed
    assert maus.threshold == config.compressed_threshold


@pytest.mark.parametrize("damage", [
    lambda s: s.pop("neurons"),
    lambda s: s.pop("timestamp"),
    lambda s: s["neurons"][0].pop("synapses"),
    lambda s: s["neurons"][0].pop("id"),
    lambda s: s["regions"][0].pop("rank"),
    lambda s: s.__setitem__("version", "2.0.0"),
    lambda s: s["neurons"].append(copy.deepcopy(s["neurons"][0])),
    lambda s: s["neurons"][-1]["synapses"].append({"weight": 1.0}),
])
def test_malformed_snapshot_leaves_state_untouched(trained, damage):
    snapshot = trained.export_snapshot(now=5.0)
    damage(snapshot)
    before = fingerprint(trained)
    store = trained.store

    assert trained.import_snapshot(snapshot, now=6.0) is False

    assert trained.store is store
    assert fingerprint(trained) == before
    assert trained.drain_notifications()[-1].kind == NotificationKind.SNAPSHOT_FAILED


def test_garbage_input_is_rejected(trained, config):
    assert trained.import_snapshot("not json at all") is False
    assert trained.import_snapshot([1, 2, 3]) is False
    with pytest.raises(SnapshotError):
        build_store({"timestamp": 0}, config, trained.rng)


def test_non_finite_numbers_are_rejected(trained):
    snapshot = trained.export_snapshot(now=5.0)
    snapshot["regions"].append({"id": "TOPIC_Mond", "x": 0.0, "y": 0.0, "radius": 100.0, "rank": float("inf")})
    text = json.dumps(snapshot)
    before = fingerprint(trained)

    assert "Infinity" in text
    assert trained.import_snapshot(text, now=6.0) is False
    assert fingerprint(trained) == before
    assert trained.drain_notifications()[-1].kind == NotificationKind.SNAPSHOT_FAILED


def test_save_and_load_compressed_snapshot(trained, tmp_path):
    path = tmp_path / "net.bionet"

    save_engine(trained, path)
    assert path.read_bytes().startswith(MAGIC_HEADER)
    meta = json.loads((tmp_path / "net.meta.json").read_text())
    assert meta["serialization"] == "snapshot"
    assert meta["neuron_count"] == len(trained.store)

    loaded = load_engine(path, config=trained.config)
    assert fingerprint(loaded) == fingerprint(trained)


def test_save_rotates_backups(trained, tmp_path):
    path = tmp_path / "net.bionet"
    for _ in range(3):
        trained.save(str(path))

    assert (tmp_path / "net.backup1").exists()
    assert (tmp_path / "net.backup2").exists()
    assert not (tmp_path / "net.backup3").exists()


def test_plain_json_file(trained, tmp_path):
    path = tmp_path / "net.json"
    trained.save(str(path))

    assert json.loads(path.read_text())["neurons"]
    assert fingerprint(BioEngine.load(str(path))) == fingerprint(trained)


def test_full_save_with_dill(trained, tmp_path):
    path = tmp_path / "net.dill"
    trained.save(str(path), serialization="full")

    loaded = BioEngine.load(str(path))

    assert isinstance(loaded, BioEngine)
    assert fingerprint(loaded) == fingerprint(trained)
    assert loaded.tick_count == trained.tick_count


def test_load_attaches_generator(trained, tmp_path):
    def generator(prompt):
        return "Der Mond ist rund."

    for name, serialization in (("net.bionet", "snapshot"), ("net.dill", "full")):
        path = tmp_path / name
        trained.save(str(path), serialization=serialization)
        loaded = BioEngine.load(str(path), generator=generator)
        assert loaded.generator is generator
        assert loaded.teacher.dispatcher is loaded.dispatcher
        assert loaded.dispatcher is not None
        loaded.shutdown()


def test_unknown_serialization(trained, tmp_path):
    with pytest.raises(ValueError):
        trained.save(str(tmp_path / "x.bionet"), serialization="yaml")


def test_corrupted_file_is_rejected(tmp_path):
    path = tmp_path / "broken.bionet"
    path.write_bytes(MAGIC_HEADER + b"garbage")
    with pytest.raises(SnapshotError):
        load_engine(path)


def test_checksum_mismatch_is_rejected(trained):
    payload = json.loads(gzip.decompress(encode_snapshot(trained.export_snapshot(now=1.0))[len(MAGIC_HEADER):]))
    payload["timestamp"] = 2.0
    tampered = MAGIC_HEADER + gzip.compress(json.dumps(payload).encode("utf-8"))

    with pytest.raises(SnapshotError, match="checksum"):
        decode_snapshot(tampered)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_engine(tmp_path / "nope.bionet")
