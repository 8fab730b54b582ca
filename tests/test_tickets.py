"""Ticket lifecycle: value consistency, resale and attendee operations."""

from __future__ import annotations

import pytest

from evenntz_coordinator.coordinator.tickets import TicketLifecycleCoordinator
from evenntz_coordinator.errors import (
    ConfirmationTimeout,
    LedgerTransportError,
    SubmittedOutcomeUnknown,
    TransactionRejected,
)
from evenntz_coordinator.models.records import TicketFailure, TicketOperation
from evenntz_coordinator.stellar.gateway import LedgerGateway
from tests.conftest import (
    EVENT_ADDRESS,
    FACTORY_ID,
    TEST_PUBLIC,
    TICKET_ADDRESS,
    seed_event,
)
from tests.factories import make_handle, make_receipt


@pytest.fixture
def seeded(ledger):
    seed_event(ledger)
    ledger.set_read(TICKET_ADDRESS, "get_resale_info",
                    {"listed": True, "price": 600, "resale_count": 0}, args=(7,))
    return ledger


# ── Scenario D: resale value mismatch ────────────────────────────


async def test_buy_resale_below_listing_price(tickets, seeded):
    """offered 500 < listed 600 → value mismatch, no ledger write."""
    outcome = await tickets.buy_resale(EVENT_ADDRESS, 7, 500)

    assert not outcome.success
    assert outcome.failure is TicketFailure.VALUE_MISMATCH
    assert seeded.submitted == []


async def test_buy_resale_at_listing_price(tickets, seeded):
    outcome = await tickets.buy_resale(EVENT_ADDRESS, 7, 600)

    assert outcome.success
    assert outcome.confirmed
    call = seeded.submits_of("buy_resale")[0]
    assert call.contract_address == TICKET_ADDRESS
    assert call.args == (TEST_PUBLIC, 7)
    assert call.value == 600


async def test_buy_resale_unlisted(tickets, seeded):
    seeded.set_read(TICKET_ADDRESS, "get_resale_info", {"listed": False, "price": 0}, args=(7,))

    outcome = await tickets.buy_resale(EVENT_ADDRESS, 7, 600)

    assert outcome.failure is TicketFailure.RESALE_NO_LONGER_AVAILABLE
    assert seeded.submitted == []


async def test_buy_resale_lost_race(tickets, seeded):
    """Listing sold between the read and the write → no longer available."""
    seeded.fail_submit("buy_resale", TransactionRejected("not listed"))

    outcome = await tickets.buy_resale(EVENT_ADDRESS, 7, 600)

    assert outcome.failure is TicketFailure.RESALE_NO_LONGER_AVAILABLE


# ── Primary purchase ─────────────────────────────────────────────


async def test_purchase_exact_price(tickets, seeded):
    seeded.set_confirmation("buy_ticket", make_receipt(return_value=11))

    outcome = await tickets.purchase(EVENT_ADDRESS, "ipfs://meta", 1000)

    assert outcome.success
    assert outcome.token_id == 11
    assert outcome.ticket_contract == TICKET_ADDRESS
    assert seeded.submits_of("buy_ticket")[0].value == 1000


@pytest.mark.parametrize("offered", [999, 1001, 0])
async def test_purchase_wrong_value_on_paid_event(tickets, seeded, offered):
    outcome = await tickets.purchase(EVENT_ADDRESS, "ipfs://meta", offered)

    assert outcome.failure is TicketFailure.VALUE_MISMATCH
    assert seeded.submitted == []


async def test_free_event_requires_zero_value(tickets, ledger):
    seed_event(ledger, kind=0, price=1000)

    refused = await tickets.purchase(EVENT_ADDRESS, "ipfs://meta", 1000)
    accepted = await tickets.purchase(EVENT_ADDRESS, "ipfs://meta", 0)

    assert refused.failure is TicketFailure.VALUE_MISMATCH
    assert accepted.success


async def test_purchase_without_confirmation(tickets, seeded):
    outcome = await tickets.purchase(EVENT_ADDRESS, "ipfs://meta", 1000, confirm=False)

    assert outcome.success
    assert outcome.tx_handle is not None
    assert not outcome.confirmed
    assert seeded.confirm_calls == []


# ── Resale listing ───────────────────────────────────────────────


@pytest.mark.parametrize("price", [0, -5])
async def test_non_positive_resale_price(tickets, seeded, price):
    outcome = await tickets.list_for_resale(EVENT_ADDRESS, 7, price)

    assert outcome.failure is TicketFailure.INVALID_RESALE_PRICE
    assert seeded.read_calls == []
    assert seeded.submitted == []


async def test_list_for_resale(tickets, seeded):
    outcome = await tickets.list_for_resale(EVENT_ADDRESS, 7, 1500)

    assert outcome.success
    assert seeded.submits_of("list_for_resale")[0].args == (TEST_PUBLIC, 7, 1500)


async def test_cancel_resale(tickets, seeded):
    outcome = await tickets.cancel_resale(EVENT_ADDRESS, 7)
    assert outcome.operation is TicketOperation.CANCEL_RESALE
    assert outcome.success


# ── Attendee management ──────────────────────────────────────────


async def test_check_in(tickets, seeded):
    outcome = await tickets.check_in(EVENT_ADDRESS, 7)

    assert outcome.success
    call = seeded.submits_of("check_in")[0]
    assert call.contract_address == EVENT_ADDRESS
    assert call.args == (TEST_PUBLIC, 7)


async def test_approve_and_revoke(tickets, seeded):
    assert (await tickets.approve_attendee(EVENT_ADDRESS, "GUSER")).success
    assert (await tickets.revoke_attendee(EVENT_ADDRESS, "GUSER")).success
    assert seeded.submits_of("approve_user")[0].args == (TEST_PUBLIC, "GUSER")
    assert seeded.submits_of("revoke_user")[0].args == (TEST_PUBLIC, "GUSER")


async def test_mint_for_user_reports_token(tickets, seeded):
    seeded.set_confirmation("mint_for_user", make_receipt(return_value=3))

    outcome = await tickets.mint_for_user(EVENT_ADDRESS, "GUSER", "ipfs://meta")

    assert outcome.token_id == 3


async def test_airdrop(tickets, seeded):
    outcome = await tickets.airdrop(EVENT_ADDRESS, ["GA", "GB"], "ipfs://meta")

    assert outcome.success
    call = seeded.submits_of("airdrop_tickets")[0]
    assert call.contract_address == TICKET_ADDRESS
    assert call.args == (TEST_PUBLIC, ["GA", "GB"], "ipfs://meta")


# ── Failure classification ───────────────────────────────────────


async def test_requires_wallet(ledger, retry):
    seed_event(ledger)
    coordinator = TicketLifecycleCoordinator(LedgerGateway(ledger, FACTORY_ID), retry=retry)

    outcome = await coordinator.check_in(EVENT_ADDRESS, 7)

    assert outcome.failure is TicketFailure.REQUIRES_WALLET
    assert ledger.read_calls == []


async def test_unknown_event_is_interface_mismatch(tickets, ledger):
    outcome = await tickets.check_in("CUNKNOWN", 7)
    assert outcome.failure is TicketFailure.CONTRACT_INTERFACE_MISMATCH


async def test_transient_read_failure_retried(tickets, seeded):
    seeded.set_read(EVENT_ADDRESS, "ticket_contract", LedgerTransportError("blip"))

    outcome = await tickets.check_in(EVENT_ADDRESS, 7)

    assert outcome.failure is TicketFailure.LEDGER_UNAVAILABLE
    assert len(seeded.reads_of("ticket_contract")) == 3


async def test_send_failure_after_signing_not_resubmitted(tickets, seeded):
    handle = make_handle("check_in")
    seeded.fail_submit("check_in", SubmittedOutcomeUnknown(handle, "reset"))

    outcome = await tickets.check_in(EVENT_ADDRESS, 7)

    assert outcome.failure is TicketFailure.SUBMITTED_OUTCOME_UNKNOWN
    assert outcome.tx_handle == handle
    assert len(seeded.submits_of("check_in")) == 1


async def test_confirmation_timeout_is_outcome_unknown(tickets, seeded):
    seeded.set_confirmation("check_in", ConfirmationTimeout(make_handle("check_in"), 5.0))

    outcome = await tickets.check_in(EVENT_ADDRESS, 7)

    assert outcome.failure is TicketFailure.SUBMITTED_OUTCOME_UNKNOWN
    assert outcome.tx_handle is not None


async def test_failed_receipt_is_rejected(tickets, seeded):
    seeded.set_confirmation("check_in", make_receipt(success=False, revert_reason="already used"))

    outcome = await tickets.check_in(EVENT_ADDRESS, 7)

    assert outcome.failure is TicketFailure.LEDGER_REJECTED
    assert outcome.error == "already used"
