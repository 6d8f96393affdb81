"""
Error Taxonomy

Only two kinds of fault ever leave the engine:
- SnapshotError: a snapshot (dict, JSON text or file) is malformed
- DelegateError: the external text generator failed or timed out

Stale synapse targets and hitting the neuron ceiling are not errors; the
physics loop and structural plasticity treat them as no-ops.
"""


class BioNetError(Exception):
    """Base class for engine errors."""


class SnapshotError(BioNetError, ValueError):
    """Raised when a snapshot cannot be imported."""


class DelegateError(BioNetError):
    """Raised when the text-generation delegate fails."""
