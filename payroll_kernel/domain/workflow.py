"""
Canonical workflow types (``payroll_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines.  Guard, Transition and
Workflow are defined once here; payroll modules declare their lifecycles
with them and look transitions up by (action, from_state).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``allowed_roles`` empty means the transition is not role-gated.
"""

from __future__ import annotations

from dataclasses import dataclass


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
    """A valid state transition in a workflow.

    Contract: frozen.  ``requires_reason=True`` means the caller must supply
    a non-empty reason (rejections, unfreeze).
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    allowed_roles: tuple[str, ...] = ()
    requires_reason: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``terminal_states`` are states with no outgoing transitions (optional).
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
                f"Workflow {self.name}: initial state {self.initial_state} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references an unknown state"
                )

    @property
    def actions(self) -> frozenset[str]:
        return frozenset(t.action for t in self.transitions)

    def find(self, action: str, from_state: str) -> Transition | None:
        """Return the transition for ``action`` out of ``from_state``, if any."""
        for t in self.transitions:
            if t.action == action and t.from_state == from_state:
                return t
        return None

    def roles_for(self, action: str) -> tuple[str, ...]:
        """Union of roles allowed to perform ``action`` from any state."""
        roles: list[str] = []
        for t in self.transitions:
            if t.action == action:
                for role in t.allowed_roles:
                    if role not in roles:
                        roles.append(role)
        return tuple(roles)

    def sources_for(self, action: str) -> tuple[str, ...]:
        """States from which ``action`` is permitted."""
        return tuple(t.from_state for t in self.transitions if t.action == action)
