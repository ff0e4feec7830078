"""Tests for guard evaluation: admit, reject and redirect."""
import asyncio

import pytest

from stately import Admit, Machine, Redirect, Reject, UnknownStateError


def _guarded(guard, **extra) -> Machine:
    states = {
        "idle": {"on": {"CLICK": "loading"}},
        "loading": {"on": {"LOADED": "idle"}, "guard": guard},
        "full": {},
    }
    states.update(extra)
    return Machine({"count": 0}, states, "idle")


def _run(machine: Machine, *events) -> None:
    async def run():
        await machine.start()
        for event in events:
            await machine.send(*event)

    asyncio.run(run())


class TestAdmitAndReject:
    """Test cases for boolean guard outcomes."""

    def test_guard_admits(self):
        """A true guard lets the transition through."""
        async def guard(context):
            return context["count"] == 1

        machine = _guarded(guard)

        _run(machine, ("CLICK", None, {"count": 1}))

        assert machine.current_state == "loading"

    def test_guard_rejects(self):
        """A false guard keeps the previous state."""
        async def guard(context):
            return context["count"] == 1

        machine = _guarded(guard)

        _run(machine, ("CLICK", {"count": 0}))

        assert machine.current_state == "idle"

    def test_guard_returning_none_rejects(self):
        """A guard that returns nothing rejects."""
        machine = _guarded(lambda context: None)

        _run(machine, ("CLICK",))

        assert machine.current_state == "idle"

    def test_sync_guard(self):
        """Guards need not be coroutines."""
        machine = _guarded(lambda context: True)

        _run(machine, ("CLICK",))

        assert machine.current_state == "loading"

    def test_guard_sees_patched_context(self):
        """The send patch is merged before the guard runs."""
        seen = []

        def guard(context):
            seen.append(dict(context))
            return True

        machine = _guarded(guard)

        _run(machine, ("CLICK", None, {"count": 4}))

        assert seen == [{"count": 4}]

    def test_rejected_patch_still_applied(self):
        """Rejection does not undo the context patch."""
        machine = _guarded(lambda context: False)

        _run(machine, ("CLICK", None, {"count": 4}))

        assert machine.current_state == "idle"
        assert machine.context == {"count": 4}

    def test_rejection_reruns_enter_of_current_state(self):
        """On rejection the still-current state's enter hook runs again."""
        entered = []
        machine = _guarded(
            lambda context: False,
            idle={"on": {"CLICK": "loading"}, "enter": lambda c: entered.append("idle")},
        )

        _run(machine, ("CLICK",))

        assert entered == ["idle", "idle"]

    def test_rejection_does_not_follow_goto(self):
        """A rejected transition does not chain the current state's goto."""
        entered = []
        machine = Machine(
            {},
            {
                "a": {"goto": "b", "enter": lambda c: entered.append("a")},
                "b": {"guard": lambda c: False},
            },
            "a",
        )

        asyncio.run(machine.start())

        assert machine.current_state == "a"
        assert entered == ["a", "a"]

    def test_explicit_outcomes(self):
        """Admit and Reject instances behave like True and False."""
        admitting = _guarded(lambda context: Admit())
        rejecting = _guarded(lambda context: Reject())

        _run(admitting, ("CLICK",))
        _run(rejecting, ("CLICK",))

        assert admitting.current_state == "loading"
        assert rejecting.current_state == "idle"

    def test_unsupported_guard_value(self):
        """Anything other than bool, None, str or an outcome is a TypeError."""
        machine = _guarded(lambda context: 1)

        with pytest.raises(TypeError, match="Guard for state 'loading'"):
            _run(machine, ("CLICK",))

    def test_guard_exception_propagates(self):
        """Errors raised by guards are not swallowed."""
        def guard(context):
            raise RuntimeError("boom")

        machine = _guarded(guard)

        with pytest.raises(RuntimeError, match="boom"):
            _run(machine, ("CLICK",))
        assert machine.current_state == "idle"


class TestRedirect:
    """Test cases for guards that return a state name."""

    def test_can_return_a_state_from_guard(self):
        """Handler increments count; the guard redirects once count hits 2."""
        def on_click(context, data):
            context["count"] = context["count"] + 1
            return "loading"

        async def guard(context):
            if context["count"] == 2:
                return "full"
            return False

        machine = Machine(
            {"count": 0},
            {
                "idle": {"on": {"CLICK": on_click}},
                "loading": {"guard": guard, "goto": "idle"},
                "full": {},
            },
            "idle",
        )

        async def run():
            await machine.start()
            await machine.send("CLICK")
            first = machine.current_state
            await machine.send("CLICK")
            return first

        first = asyncio.run(run())

        assert first == "idle"
        assert machine.current_state == "full"
        assert machine.context == {"count": 2}

    def test_redirect_instance(self):
        """Redirect outcomes work like returning the name."""
        machine = _guarded(lambda context: Redirect("full"))

        _run(machine, ("CLICK",))

        assert machine.current_state == "full"

    def test_redirect_follows_further_guards(self):
        """A redirect target's own guard may redirect again."""
        machine = _guarded(
            lambda context: "full",
            full={"guard": lambda context: "done"},
            done={},
        )

        _run(machine, ("CLICK",))

        assert machine.current_state == "done"

    def test_redirect_follows_goto(self):
        """A redirect target's goto chain is followed."""
        machine = _guarded(
            lambda context: "full",
            full={"goto": "done"},
            done={},
        )

        _run(machine, ("CLICK",))

        assert machine.current_state == "done"

    def test_redirect_target_can_reject(self):
        """A rejecting guard on the redirect target keeps the old state."""
        machine = _guarded(
            lambda context: "full",
            full={"guard": lambda context: False},
        )

        _run(machine, ("CLICK",))

        assert machine.current_state == "idle"

    def test_redirect_to_self_admits(self):
        """A guard naming its own state admits the transition."""
        machine = _guarded(lambda context: "loading")

        _run(machine, ("CLICK",))

        assert machine.current_state == "loading"

    def test_unknown_redirect_target(self):
        """A redirect to an undeclared state is fatal and names both states."""
        machine = _guarded(lambda context: "missing")

        with pytest.raises(UnknownStateError) as exc_info:
            _run(machine, ("CLICK",))

        err = exc_info.value
        assert err.state == "missing"
        assert err.guarded == "loading"
        assert str(err) == "State 'missing' returned from guard in 'loading' does not exist."
        assert machine.current_state == "idle"
