"""Simple finite state machine utility for enforcing allowed status transitions.

Usage:
    from medspa.utils.fsm import TransitionValidator
    PAYMENT_FSM = TransitionValidator({
        'pending': {'completed', 'failed', 'canceled'},
        'completed': set(),
    }, field_name='payment status')
    PAYMENT_FSM.assert_can_transition(current_status, target_status)

Raises ConflictError if invalid.
"""
from __future__ import annotations
from typing import Dict, Set
from medspa.errors import ConflictError


class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            raise ConflictError(f"Invalid {self.field_name} transition {current} -> {target}")
        return True

    def sources_for(self, target: str) -> Set[str]:
        """States from which target is reachable in one step."""
        return {src for src, targets in self.graph.items() if target in targets}

    def is_terminal(self, state: str) -> bool:
        return not self.graph.get(state)


__all__ = ['TransitionValidator']
