"""Workflow: derived thread state and update notifications."""

from conversation_engine.workflow.events import ThreadEventBus
from conversation_engine.workflow.state import derive_workflow_state

__all__ = ["ThreadEventBus", "derive_workflow_state"]
