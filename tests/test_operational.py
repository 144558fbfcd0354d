"""
Tests for the Operational Gate and Authorization Bridge
"""

import pytest
from surety_rail.core.authorization import AuthorizationBridge
from surety_rail.core.errors import (
    CallerNotAuthorizedError,
    NotOperationalError,
    UnauthorizedError,
)
from surety_rail.core.operational import OperationalGate

OWNER = "owner"


class TestOperationalGate:
    """Owner-controlled on/off switch."""

    def test_defaults_to_operating(self):
        gate = OperationalGate(OWNER)
        assert gate.is_operating() is True
        assert bool(gate) is True
        gate.require_operating()

    def test_owner_can_suspend_and_resume(self):
        gate = OperationalGate(OWNER)

        gate.set_operating(False, OWNER)
        assert gate.is_operating() is False
        with pytest.raises(NotOperationalError):
            gate.require_operating()

        gate.set_operating(True, OWNER)
        assert gate.is_operating() is True

    def test_non_owner_rejected(self):
        """Flag must be unchanged after a rejected call."""
        gate = OperationalGate(OWNER)

        with pytest.raises(UnauthorizedError):
            gate.set_operating(False, "intruder")

        assert gate.is_operating() is True
        assert gate.get_history() == []

    def test_setting_same_value_is_allowed(self):
        gate = OperationalGate(OWNER)
        gate.set_operating(True, OWNER)
        assert gate.is_operating() is True

    def test_history_recorded(self):
        gate = OperationalGate(OWNER)
        gate.set_operating(False, OWNER)
        gate.set_operating(True, OWNER)

        history = gate.get_history()
        assert len(history) == 2
        assert history[0].old_status is True
        assert history[0].new_status is False
        assert history[1].changed_by == OWNER
        assert history[1].to_dict()["new_status"] is True

    def test_callbacks_invoked(self):
        gate = OperationalGate(OWNER)
        changes = []
        gate.register_callback(lambda old, new: changes.append((old, new)))

        gate.set_operating(False, OWNER)

        assert changes == [(True, False)]

    def test_failing_callback_does_not_block_change(self):
        gate = OperationalGate(OWNER)

        def boom(old, new):
            raise RuntimeError("callback failure")

        gate.register_callback(boom)
        gate.set_operating(False, OWNER)

        assert gate.is_operating() is False

    def test_restore_skips_history(self):
        gate = OperationalGate(OWNER)
        gate.restore(False)

        assert gate.is_operating() is False
        assert gate.get_history() == []


class TestAuthorizationBridge:
    """Allow-list of modules that may call privileged entry points."""

    @pytest.fixture
    def gate(self):
        return OperationalGate(OWNER)

    @pytest.fixture
    def bridge(self, gate):
        return AuthorizationBridge(OWNER, gate)

    def test_empty_by_default(self, bridge):
        assert bridge.is_authorized("app") is False
        with pytest.raises(CallerNotAuthorizedError):
            bridge.require_authorized("app")

    def test_owner_authorizes(self, bridge):
        bridge.authorize("app", OWNER)

        assert bridge.is_authorized("app") is True
        bridge.require_authorized("app")

    def test_authorize_is_idempotent(self, bridge):
        bridge.authorize("app", OWNER)
        bridge.authorize("app", OWNER)

        assert bridge.authorized_modules() == ["app"]

    def test_deauthorize(self, bridge):
        bridge.authorize("app", OWNER)
        bridge.deauthorize("app", OWNER)

        assert bridge.is_authorized("app") is False

    def test_deauthorize_unknown_module_is_noop(self, bridge):
        bridge.deauthorize("never-added", OWNER)
        assert bridge.authorized_modules() == []

    def test_non_owner_rejected(self, bridge):
        with pytest.raises(UnauthorizedError):
            bridge.authorize("app", "intruder")
        assert bridge.is_authorized("app") is False

        bridge.authorize("app", OWNER)
        with pytest.raises(UnauthorizedError):
            bridge.deauthorize("app", "intruder")
        assert bridge.is_authorized("app") is True

    def test_changes_blocked_when_suspended(self, gate, bridge):
        gate.set_operating(False, OWNER)

        with pytest.raises(NotOperationalError):
            bridge.authorize("app", OWNER)
        assert bridge.is_authorized("app") is False

    def test_modules_listed_sorted(self, bridge):
        for module_id in ("zeta", "alpha", "mid"):
            bridge.authorize(module_id, OWNER)

        assert bridge.authorized_modules() == ["alpha", "mid", "zeta"]

    def test_restore_replaces_set(self, bridge):
        bridge.authorize("old", OWNER)
        bridge.restore(["new-a", "new-b"])

        assert bridge.authorized_modules() == ["new-a", "new-b"]
        assert bridge.is_authorized("old") is False
