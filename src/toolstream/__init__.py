"""toolstream - streaming tool-use orchestration with validated results."""

from .core.events import OrchestratorEvent, QueueSink
from .core.orchestrator import OrchestrationOutcome, Orchestrator, OutcomeStatus
from .telemetry import TelemetryAggregator
from .tools.registry import ToolRegistry
from .validation.triage import TriageResult, validate_triage_result

__version__ = "0.1.0"

__all__ = [
    "OrchestrationOutcome",
    "Orchestrator",
    "OrchestratorEvent",
    "OutcomeStatus",
    "QueueSink",
    "TelemetryAggregator",
    "ToolRegistry",
    "TriageResult",
    "validate_triage_result",
]
