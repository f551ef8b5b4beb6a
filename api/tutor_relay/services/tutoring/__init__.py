"""Question review workflow."""

from tutor_relay.services.tutoring.orchestrator import TutorOrchestrator

__all__ = ["TutorOrchestrator"]
