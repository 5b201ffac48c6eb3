"""
Incremental training orchestration
"""

from .orchestrator import OrchestratorState, TrainingOrchestrator

__all__ = ["TrainingOrchestrator", "OrchestratorState"]
