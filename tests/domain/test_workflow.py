"""
Tests for the kernel workflow value objects and the deterministic clock.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from payroll_kernel.domain.clock import DeterministicClock, SystemClock
from payroll_kernel.domain.workflow import Guard, Transition, Workflow


def _workflow(**overrides) -> Workflow:
    params = dict(
        name="doc",
        description="Document lifecycle",
        initial_state="draft",
        states=("draft", "review", "done"),
        transitions=(
            Transition("draft", "review", action="submit", allowed_roles=("clerk",)),
            Transition("review", "done", action="approve", allowed_roles=("boss",)),
            Transition("review", "draft", action="reject", allowed_roles=("boss", "auditor"),
                       requires_reason=True),
            Transition("done", "draft", action="reject", allowed_roles=("auditor",),
                       requires_reason=True),
        ),
    )
    params.update(overrides)
    return Workflow(**params)


class TestWorkflow:

    def test_find(self):
        workflow = _workflow()

        transition = workflow.find("approve", "review")

        assert transition.to_state == "done"
        assert workflow.find("approve", "draft") is None
        assert workflow.find("archive", "review") is None

    def test_roles_for_is_ordered_union(self):
        assert _workflow().roles_for("reject") == ("boss", "auditor")
        assert _workflow().roles_for("unknown") == ()

    def test_sources_for(self):
        assert _workflow().sources_for("reject") == ("review", "done")

    def test_actions(self):
        assert _workflow().actions == frozenset({"submit", "approve", "reject"})

    def test_unknown_initial_state(self):
        with pytest.raises(ValueError):
            _workflow(initial_state="archived")

    def test_transition_to_unknown_state(self):
        with pytest.raises(ValueError):
            _workflow(transitions=(Transition("draft", "archived", action="archive"),))

    def test_guard_is_descriptive(self):
        guard = Guard(name="g", description="always")
        transition = Transition("draft", "review", action="submit", guard=guard)
        assert transition.guard.name == "g"
        assert transition.allowed_roles == ()
        assert not transition.requires_reason


class TestClock:

    def test_deterministic_clock_is_fixed(self):
        start = datetime(2026, 2, 1, 12, tzinfo=timezone.utc)
        clock = DeterministicClock(start)

        assert clock.now() == clock.now() == start
        assert clock.today() == date(2026, 2, 1)

    def test_advance_and_tick(self):
        start = datetime(2026, 2, 28, 23, 59, 59, tzinfo=timezone.utc)
        clock = DeterministicClock(start)

        assert clock.tick() == start + timedelta(seconds=1)
        assert clock.today() == date(2026, 3, 1)
        clock.advance(60)
        assert clock.now() == start + timedelta(seconds=61)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(100)
        target = datetime(2030, 1, 1, tzinfo=timezone.utc)

        clock.set_time(target)

        assert clock.now() == target

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None
