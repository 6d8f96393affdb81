"""
Engine Persistence

Two ways to keep a network between runs:

- Snapshot: a flat {version, timestamp, regions[], neurons[]} structure with
  synapses embedded in their source neuron. On disk it is gzip-compressed
  JSON behind a magic header with a SHA-256 checksum; plain .json files are
  read as well.
- Full: the complete engine object graph serialized with dill.

Importing a snapshot never trusts stored region ids or thresholds for tagged
neurons: keys go to INPUT, pixels to VISUAL and concepts to the region of
their token class (or the dynamic region named after them), and thresholds
are recomputed from the same class.
"""

import gzip
import hashlib
import json
import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

import dill
import numpy as np

from .config import EngineConfig
from .encoders import classify_token
from .entities import (
    CORE, INPUT, VISUAL, Neuromodulator, NeuronKind, Region, Synapse, static_regions
)
from .errors import SnapshotError
from .store import EntityStore

logger = logging.getLogger(__name__)


# =============================================================================
# SNAPSHOT FORMAT
# =============================================================================

SNAPSHOT_VERSION = "1.0.0"
MAGIC_HEADER = b"BIONET_SNAPSHOT_V1"

REQUIRED_FIELDS = ("timestamp", "regions", "neurons")
REGION_FIELDS = ("id", "x", "y", "radius", "rank")
NEURON_FIELDS = ("id", "x", "y", "synapses")
SYNAPSE_FIELDS = ("target_id", "weight")


def export_snapshot(store: EntityStore, timestamp: Optional[float] = None) -> Dict[str, Any]:
    """
    Serialize a store into a JSON-compatible snapshot.

    Args:
        store: Network to export
        timestamp: Export time, defaults to now

    Returns:
        Snapshot dictionary
    """
    return {
        "version": SNAPSHOT_VERSION,
        "timestamp": time.time() if timestamp is None else float(timestamp),
        "regions": [_region_to_dict(r) for r in store.regions.values()],
        "neurons": [_neuron_to_dict(n) for n in store],
    }


def _region_to_dict(region: Region) -> Dict[str, Any]:
    return {
        "id": region.id,
        "label": region.label,
        "x": region.x,
        "y": region.y,
        "radius": region.radius,
        "rank": region.rank,
        "target_count": region.target_count,
        "dynamic": region.dynamic,
    }


def _neuron_to_dict(neuron) -> Dict[str, Any]:
    return {
        "id": neuron.id,
        "region_id": neuron.region_id,
        "kind": neuron.kind.value,
        "x": neuron.x,
        "y": neuron.y,
        "character": neuron.character,
        "label": neuron.label,
        "pixel_index": neuron.pixel_index,
        "potential": float(neuron.potential),
        "threshold": float(neuron.threshold),
        "refractory": int(neuron.refractory),
        "last_fired": neuron.last_fired,
        "age": int(neuron.age),
        "stress": float(neuron.stress),
        "energy": float(neuron.energy),
        "compressed": neuron.compressed,
        "modulators": {mod.value: float(level) for mod, level in neuron.modulators.items()},
        "synapses": [
            {
                "target_id": syn.target_id,
                "weight": float(syn.weight),
                "plasticity": float(syn.plasticity),
                "last_active": syn.last_active,
            }
            for syn in neuron.synapses
        ],
    }


def build_store(
    data: Union[Dict[str, Any], str, bytes],
    config: EngineConfig,
    rng: np.random.Generator,
) -> EntityStore:
    """
    Reconstruct a fresh EntityStore from a snapshot.

    Nothing outside the returned store is touched, so a failed import leaves
    the caller's network as it was.

    Raises:
        SnapshotError: Malformed snapshot or unsupported version
    """
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError as e:
            raise SnapshotError(f"Snapshot is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SnapshotError(f"Snapshot must be an object, got {type(data).__name__}")

    version = data.get("version", SNAPSHOT_VERSION)
    if not _version_compatible(version):
        raise SnapshotError(f"Incompatible snapshot version: {version}")
    for key in REQUIRED_FIELDS:
        if key not in data:
            raise SnapshotError(f"Snapshot is missing '{key}'")
    if not isinstance(data["regions"], list) or not isinstance(data["neurons"], list):
        raise SnapshotError("Snapshot regions and neurons must be lists")

    try:
        return _build(data, config, rng)
    except SnapshotError:
        raise
    except (TypeError, ValueError, KeyError, AttributeError, OverflowError) as e:
        raise SnapshotError(f"Malformed snapshot: {e}") from e


def _build(data: Dict[str, Any], config: EngineConfig, rng: np.random.Generator) -> EntityStore:
    store = EntityStore(config, rng)
    for region in static_regions():
        store.add_region(region)

    for raw in data["regions"]:
        _require(raw, REGION_FIELDS, "region")
        region_id = str(raw["id"])
        if region_id in store.regions:
            continue  # Static layout always comes from the table
        store.add_region(Region(
            id=region_id,
            label=str(raw.get("label", region_id)),
            x=float(raw["x"]),
            y=float(raw["y"]),
            radius=float(raw["radius"]),
            rank=int(raw["rank"]),
            target_count=int(raw.get("target_count", config.expansion_target_count)),
            dynamic=bool(raw.get("dynamic", True)),
        ))

    # Neurons first so every synapse target can be resolved
    pending = []
    for raw in data["neurons"]:
        _require(raw, NEURON_FIELDS, "neuron")
        if not isinstance(raw["synapses"], list):
            raise SnapshotError(f"Synapses of neuron {raw['id']} must be a list")
        pending.append((_restore_neuron(store, raw, config), raw["synapses"]))

    for neuron, synapses in pending:
        for raw_syn in synapses:
            _require(raw_syn, SYNAPSE_FIELDS, "synapse")
            target_id = str(raw_syn["target_id"])
            weight = float(raw_syn["weight"])
            if target_id == neuron.id or target_id not in store or weight <= 0:
                continue
            if neuron.synapse_to(target_id) is not None:
                continue
            last_active = raw_syn.get("last_active")
            neuron.synapses.append(Synapse(
                target_id=target_id,
                weight=min(config.max_weight, weight),
                plasticity=float(raw_syn.get("plasticity", 0.5)),
                last_active=float(last_active) if last_active is not None else None,
            ))

    return store


def _restore_neuron(store: EntityStore, raw: Dict[str, Any], config: EngineConfig):
    character = raw.get("character")
    label = raw.get("label")
    pixel_index = raw.get("pixel_index")
    if pixel_index is not None:
        pixel_index = int(pixel_index)

    region_id = _region_for(store, config, character, label, pixel_index, raw.get("region_id"))
    try:
        neuron = store.create_neuron(
            region_id,
            neuron_id=str(raw["id"]),
            character=character,
            label=label,
            pixel_index=pixel_index,
            x=float(raw["x"]),
            y=float(raw["y"]),
        )
    except ValueError as e:
        raise SnapshotError(f"Cannot restore neuron {raw['id']}: {e}") from e

    neuron.compressed = bool(raw.get("compressed", False))
    if neuron.compressed:
        neuron.threshold = config.compressed_threshold
    elif neuron.kind == NeuronKind.CONCEPT:
        neuron.threshold = store.default_threshold(neuron.kind, classify_token(label, config))

    neuron.potential = float(raw.get("potential", 0.0))
    neuron.refractory = max(0, int(raw.get("refractory", 0)))
    neuron.age = int(raw.get("age", 0))
    neuron.stress = float(raw.get("stress", 0.0))
    neuron.energy = float(raw.get("energy", neuron.energy))
    last_fired = raw.get("last_fired")
    neuron.last_fired = float(last_fired) if last_fired is not None else None

    for name, level in (raw.get("modulators") or {}).items():
        try:
            mod = Neuromodulator(name)
        except ValueError:
            continue
        neuron.modulators[mod] = float(level)
    return neuron


def _region_for(store: EntityStore, config: EngineConfig, character, label, pixel_index, stored_region) -> str:
    """Region a neuron belongs to, derived from its tag."""
    if character is not None:
        return INPUT
    if pixel_index is not None:
        return VISUAL
    if label is not None:
        region = store.get_region(str(label).upper())
        if region is not None and region.dynamic:
            return region.id
        return classify_token(label, config)
    if stored_region in store.regions:
        return stored_region
    return CORE


def _require(raw: Any, fields, what: str) -> None:
    if not isinstance(raw, dict):
        raise SnapshotError(f"Each {what} must be an object")
    missing = [f for f in fields if f not in raw]
    if missing:
        raise SnapshotError(f"{what.capitalize()} is missing {', '.join(missing)}")


def _version_compatible(version: Any) -> bool:
    """Same major version only."""
    try:
        major = int(str(version).split(".")[0])
        our_major = int(SNAPSHOT_VERSION.split(".")[0])
    except ValueError:
        return False
    return major == our_major


# =============================================================================
# ON-DISK ENCODING
# =============================================================================

def _checksum(snapshot: Dict[str, Any]) -> str:
    return hashlib.sha256(json.dumps(snapshot, sort_keys=True).encode("utf-8")).hexdigest()


def encode_snapshot(snapshot: Dict[str, Any]) -> bytes:
    """Magic header + gzip(JSON with checksum)."""
    payload = dict(snapshot)
    payload["checksum"] = _checksum(snapshot)
    return MAGIC_HEADER + gzip.compress(json.dumps(payload).encode("utf-8"))


def decode_snapshot(data: bytes) -> Dict[str, Any]:
    """
    Decode a snapshot file body (compressed or plain JSON).

    Raises:
        SnapshotError: Unreadable body or checksum mismatch
    """
    if data.startswith(MAGIC_HEADER):
        try:
            payload = json.loads(gzip.decompress(data[len(MAGIC_HEADER):]).decode("utf-8"))
        except (OSError, EOFError, UnicodeDecodeError, ValueError) as e:
            raise SnapshotError(f"Corrupted snapshot file: {e}") from e
        if not isinstance(payload, dict):
            raise SnapshotError("Snapshot must be an object")
        checksum = payload.pop("checksum", None)
        if checksum is not None and checksum != _checksum(payload):
            raise SnapshotError("Snapshot checksum mismatch - data may be corrupted")
        return payload

    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise SnapshotError("Invalid snapshot file format") from e
    if not isinstance(payload, dict):
        raise SnapshotError("Snapshot must be an object")
    return payload


# =============================================================================
# SAVE / LOAD
# =============================================================================

class EnginePersistence:
    """
    Saves and loads engines on disk.

    Features:
    - snapshot (portable, compressed JSON) or full (dill object graph) saves
    - metadata sidecar for inspection without loading
    - backup rotation of overwritten saves
    """

    VERSION = SNAPSHOT_VERSION
    SERIALIZATIONS = ("snapshot", "full")

    def __init__(self, max_backups: int = 5):
        self.max_backups = max_backups
        self._save_count = 0

    def save(
        self,
        engine,
        filepath: Union[str, Path],
        serialization: str = "snapshot",
        create_backup: bool = True,
    ) -> str:
        """
        Save an engine to file.

        Args:
            engine: The BioEngine to save
            filepath: Target file
            serialization: "snapshot" or "full"
            create_backup: Rotate an existing file into .backup<N>

        Returns:
            Path to saved file
        """
        if serialization not in self.SERIALIZATIONS:
            raise ValueError(f"Unknown serialization: {serialization!r}")
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        if create_backup and filepath.exists():
            self._rotate_backups(filepath)

        saved_at = datetime.now().isoformat()
        if serialization == "full":
            with open(filepath, "wb") as f:
                dill.dump({
                    "version": self.VERSION,
                    "saved_at": saved_at,
                    "serialization": serialization,
                    "engine": engine,
                }, f, protocol=dill.HIGHEST_PROTOCOL)
        else:
            snapshot = engine.export_snapshot()
            with open(filepath, "wb") as f:
                if filepath.suffix == ".json":
                    f.write(json.dumps(snapshot, indent=2).encode("utf-8"))
                else:
                    f.write(encode_snapshot(snapshot))

        self._save_count += 1
        with open(self.meta_path(filepath), "w") as f:
            json.dump({
                "version": self.VERSION,
                "saved_at": saved_at,
                "serialization": serialization,
                "save_count": self._save_count,
                "neuron_count": len(engine.store),
                "synapse_count": engine.store.synapse_count,
                "region_count": len(engine.store.regions),
                "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
                "file_size_bytes": os.path.getsize(filepath),
            }, f, indent=2)

        logger.info("[SNAPSHOT] Saved %s engine to %s", serialization, filepath)
        return str(filepath)

    def load(self, filepath: Union[str, Path], config: Optional[EngineConfig] = None, generator=None):
        """
        Load an engine from file.

        Args:
            filepath: Path to the save file
            config: Configuration for an engine rebuilt from a snapshot
            generator: Optional text generator to attach to the loaded engine

        Returns:
            Loaded BioEngine
        """
        from .engine import BioEngine

        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"Save file not found: {filepath}")

        with open(filepath, "rb") as f:
            data = f.read()

        if data.startswith(MAGIC_HEADER) or filepath.suffix == ".json":
            engine = BioEngine(config, generator=generator)
            engine.restore_snapshot(decode_snapshot(data))
        else:
            try:
                save_data = dill.loads(data)
            except Exception as e:
                raise SnapshotError(f"Unreadable save file {filepath}: {e}") from e
            engine = save_data.get("engine") if isinstance(save_data, dict) else None
            if not isinstance(engine, BioEngine):
                raise SnapshotError(f"No engine found in {filepath}")
            if generator is not None:
                engine.attach_generator(generator)

        logger.info("[SNAPSHOT] Loaded engine from %s (%d neurons)", filepath, len(engine.store))
        return engine

    @staticmethod
    def meta_path(filepath: Union[str, Path]) -> Path:
        return Path(filepath).with_suffix(".meta.json")

    def _rotate_backups(self, filepath: Path) -> None:
        """Shift .backup1 .. .backup<N-1> up by one, dropping the oldest."""
        oldest = filepath.with_suffix(f".backup{self.max_backups}")
        if oldest.exists():
            oldest.unlink()
        for i in range(self.max_backups - 1, 0, -1):
            old_backup = filepath.with_suffix(f".backup{i}")
            if old_backup.exists():
                old_backup.rename(filepath.with_suffix(f".backup{i + 1}"))
        filepath.rename(filepath.with_suffix(".backup1"))


# Convenience functions for direct use

def save_engine(engine, filepath: Union[str, Path], serialization: str = "snapshot") -> str:
    """Save an engine; see EnginePersistence.save."""
    return EnginePersistence().save(engine, filepath, serialization=serialization)


def load_engine(filepath: Union[str, Path], config: Optional[EngineConfig] = None, generator=None):
    """Load an engine; see EnginePersistence.load."""
    return EnginePersistence().load(filepath, config=config, generator=generator)
