"""Cache gate engine — mirror presence, workflow dispatch and polling."""

from mirrorgate.engines.cache_gate.gate import CacheGate, mirror_name, select_run
from mirrorgate.engines.cache_gate.models import (
    GateConfig,
    GateResult,
    GateState,
    GateStateMachine,
)

__all__ = [
    "CacheGate",
    "GateConfig",
    "GateResult",
    "GateState",
    "GateStateMachine",
    "mirror_name",
    "select_run",
]
