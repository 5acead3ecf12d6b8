"""Reconciliation state machine."""

from .state_machine import Action, ReconciliationStateMachine, TRANSITIONS

__all__ = ["Action", "ReconciliationStateMachine", "TRANSITIONS"]
