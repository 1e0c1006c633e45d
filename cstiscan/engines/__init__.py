"""
Template engine knowledge.

- catalog: detection probe, payload and reflection pattern per engine
- fingerprint: which engine a loaded page uses
- reflection: whether an injected payload was evaluated
"""

from cstiscan.engines.catalog import CATALOG, EngineId, EngineSignature, ReflectionMode
from cstiscan.engines.fingerprint import EngineFingerprinter, fingerprinter
from cstiscan.engines.reflection import ReflectionOracle, oracle

__all__ = [
    "CATALOG",
    "EngineId",
    "EngineSignature",
    "ReflectionMode",
    "EngineFingerprinter",
    "fingerprinter",
    "ReflectionOracle",
    "oracle",
]
