"""
Canonical workflow types (``saf_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines, shared by the bid, RFQ,
contract, and delivery lifecycles so that Guard, Transition, and Workflow
are defined once, plus the lookup that decides whether a move is legal.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* A move not present in ``transitions`` raises ``IllegalTransitionError``.
"""

from __future__ import annotations

from dataclasses import dataclass

from saf_kernel.exceptions import IllegalTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``terminal_states`` are states with no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state '{self.initial_state}' "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references unknown state"
                )

    def find_transition(self, from_state: str, action: str) -> Transition | None:
        """Return the transition for ``action`` out of ``from_state``, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def allowed_actions(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == from_state)

    def require_transition(
        self,
        from_state: str,
        action: str,
        entity_id: object,
    ) -> Transition:
        """Return the legal transition or raise ``IllegalTransitionError``."""
        transition = self.find_transition(from_state, action)
        if transition is None:
            raise IllegalTransitionError(
                entity_type=self.name,
                entity_id=str(entity_id),
                from_state=from_state,
                action=action,
            )
        return transition
