"""
Tests for the Membership and Funding Ledgers
"""

import pytest
from surety_rail.config import WEI_PER_ETHER
from surety_rail.core.authorization import AuthorizationBridge
from surety_rail.core.errors import (
    AlreadyInitializedError,
    AlreadyRegisteredError,
    CallerNotAuthorizedError,
    InvalidFundingError,
    NotOperationalError,
    UnauthorizedError,
)
from surety_rail.core.funding import FundingLedger
from surety_rail.core.membership import Member, MembershipLedger
from surety_rail.core.operational import OperationalGate

OWNER = "owner"
APP = "app-module"
BOND = 10 * WEI_PER_ETHER


@pytest.fixture
def gate():
    return OperationalGate(OWNER)


@pytest.fixture
def bridge(gate):
    bridge = AuthorizationBridge(OWNER, gate)
    bridge.authorize(APP, OWNER)
    return bridge


@pytest.fixture
def membership(gate, bridge):
    return MembershipLedger(OWNER, gate, bridge)


@pytest.fixture
def funding(gate, membership):
    return FundingLedger(BOND, gate, membership)


class TestBootstrapMember:
    """One-time owner seeding of the first member."""

    def test_register_first_member(self, membership):
        member = membership.register_first_member("a1", "Airline 1", OWNER)

        assert member.registered is True
        assert member.funded is False
        assert member.registered_at is not None
        assert membership.is_airline("a1") is True
        assert membership.get_registered_airlines() == 1

    def test_only_once(self, membership):
        membership.register_first_member("a1", "Airline 1", OWNER)

        with pytest.raises(AlreadyInitializedError):
            membership.register_first_member("a2", "Airline 2", OWNER)
        assert membership.is_known("a2") is False

    def test_owner_only(self, membership):
        with pytest.raises(UnauthorizedError):
            membership.register_first_member("a1", "Airline 1", "intruder")
        assert membership.get_registered_airlines() == 0

    def test_requires_operating(self, gate, membership):
        gate.set_operating(False, OWNER)
        with pytest.raises(NotOperationalError):
            membership.register_first_member("a1", "Airline 1", OWNER)


class TestPrivilegedEntryPoints:
    """insert_pending / finalize_registration are allow-list gated."""

    def test_insert_then_finalize(self, membership):
        membership.insert_pending("c1", "Candidate", APP)
        assert membership.is_known("c1") is True
        assert membership.is_airline("c1") is False
        assert membership.get_registered_airlines() == 0

        membership.finalize_registration("c1", APP)
        assert membership.is_airline("c1") is True
        assert membership.get_registered_airlines() == 1

    def test_insert_pending_keeps_existing_record(self, membership):
        first = membership.insert_pending("c1", "First Name", APP)
        second = membership.insert_pending("c1", "Second Name", APP)

        assert first is second
        assert second.name == "First Name"

    def test_unauthorized_module_rejected(self, membership):
        with pytest.raises(CallerNotAuthorizedError):
            membership.insert_pending("c1", "Candidate", "rogue")
        assert membership.is_known("c1") is False

        membership.insert_pending("c1", "Candidate", APP)
        with pytest.raises(CallerNotAuthorizedError):
            membership.finalize_registration("c1", "rogue")
        assert membership.is_airline("c1") is False

    def test_finalize_unknown_candidate(self, membership):
        with pytest.raises(KeyError):
            membership.finalize_registration("ghost", APP)

    def test_finalize_twice_does_not_double_count(self, membership):
        membership.insert_pending("c1", "Candidate", APP)
        membership.finalize_registration("c1", APP)

        with pytest.raises(AlreadyRegisteredError):
            membership.finalize_registration("c1", APP)
        assert membership.get_registered_airlines() == 1

    def test_blocked_when_suspended(self, gate, membership):
        gate.set_operating(False, OWNER)
        with pytest.raises(NotOperationalError):
            membership.insert_pending("c1", "Candidate", APP)


class TestMemberQueries:
    """Read-side helpers."""

    def test_unknown_member(self, membership):
        assert membership.is_airline("nobody") is False
        assert membership.is_funded("nobody") is False
        assert membership.get_member("nobody") is None

    def test_list_and_voting_members(self, membership, funding):
        membership.register_first_member("a1", "Airline 1", OWNER)
        membership.insert_pending("a2", "Airline 2", APP)
        membership.finalize_registration("a2", APP)
        membership.insert_pending("c1", "Pending", APP)
        funding.fund("a1", BOND, "a1")

        assert {m.member_id for m in membership.list_members()} == {"a1", "a2", "c1"}
        assert {m.member_id for m in membership.list_members(registered_only=True)} == {"a1", "a2"}
        assert [m.member_id for m in membership.voting_members()] == ["a1"]

    def test_member_dict_round_trip(self, membership):
        membership.register_first_member("a1", "Airline 1", OWNER)
        data = membership.get_member("a1").to_dict()

        assert data["status"] == "REGISTERED"
        assert Member.from_dict(data) == membership.get_member("a1")

    def test_import_rederives_count(self, membership):
        membership.import_state({
            "registered_count": 99,
            "members": [
                {"member_id": "a1", "name": "A", "registered": True, "funded": True},
                {"member_id": "a2", "name": "B", "registered": True},
                {"member_id": "c1", "name": "C", "registered": False},
            ],
        })

        assert membership.get_registered_airlines() == 2
        assert membership.is_funded("a1") is True
        assert membership.is_airline("c1") is False


class TestFundingLedger:
    """Cumulative bond against the threshold."""

    @pytest.fixture(autouse=True)
    def first_member(self, membership):
        membership.register_first_member("a1", "Airline 1", OWNER)

    def test_full_bond_funds(self, funding, membership):
        record = funding.fund("a1", BOND, "a1")

        assert record.total_after == BOND
        assert funding.is_funded("a1") is True
        assert membership.is_funded("a1") is True
        assert membership.get_member("a1").funded is True

    def test_partial_payments_accumulate(self, funding):
        funding.fund("a1", 4 * WEI_PER_ETHER, "a1")
        assert funding.is_funded("a1") is False

        record = funding.fund("a1", 6 * WEI_PER_ETHER, "a1")
        assert funding.is_funded("a1") is True
        assert funding.get_balance("a1") == BOND
        assert record.total_after == BOND

    def test_overfunding_is_kept(self, funding):
        funding.fund("a1", BOND + 1, "a1")
        funding.fund("a1", 1, "a1")

        assert funding.get_balance("a1") == BOND + 2
        assert funding.is_funded("a1") is True

    def test_below_threshold_not_funded(self, funding):
        funding.fund("a1", BOND - 1, "a1")
        assert funding.is_funded("a1") is False

    def test_must_fund_self(self, funding):
        with pytest.raises(InvalidFundingError):
            funding.fund("a1", BOND, "someone-else")
        assert funding.get_balance("a1") == 0

    @pytest.mark.parametrize("amount", [0, -1, True, 1.5, "10"])
    def test_invalid_amounts(self, funding, amount):
        with pytest.raises(InvalidFundingError):
            funding.fund("a1", amount, "a1")
        assert funding.get_balance("a1") == 0

    def test_unregistered_member_rejected(self, funding, membership):
        membership.insert_pending("c1", "Pending", APP)
        with pytest.raises(InvalidFundingError):
            funding.fund("c1", BOND, "c1")

    def test_blocked_when_suspended(self, gate, funding):
        gate.set_operating(False, OWNER)
        with pytest.raises(NotOperationalError):
            funding.fund("a1", BOND, "a1")

    def test_threshold_must_be_positive(self, gate, membership):
        with pytest.raises(ValueError):
            FundingLedger(0, gate, membership)

    def test_export_uses_decimal_strings(self, funding):
        record = funding.fund("a1", BOND, "a1")
        state = funding.export_state()

        assert state["balances"] == {"a1": str(BOND)}
        assert state["threshold"] == str(BOND)
        assert record.to_dict()["amount"] == str(BOND)

    def test_import_marks_funded(self, funding, membership):
        funding.import_state({"balances": {"a1": str(BOND)}})

        assert funding.get_balance("a1") == BOND
        assert membership.is_funded("a1") is True
