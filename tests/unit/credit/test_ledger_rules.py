"""
Credit Service Unit Tests

Amount validation, paging bounds and event publishing of CreditService with
a mocked repository.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from core.nats_client import EventType
from microservices.credit_service.credit_service import CreditService
from microservices.credit_service.models import (
    CreditTransaction,
    CreditTransactionType,
    LedgerEntryResult,
)
from microservices.credit_service.protocols import InvalidAmountError

pytestmark = pytest.mark.unit


def _result(transaction_type=CreditTransactionType.CREDIT, amount=10, balance=10, applied=True):
    return LedgerEntryResult(
        balance=balance,
        applied=applied,
        transaction=CreditTransaction(
            transaction_id="cred_txn_1",
            owner_id="org_1",
            transaction_type=transaction_type,
            amount=amount,
            balance_after=balance,
        ),
    )


@pytest.fixture
def repository():
    repo = MagicMock()
    repo.apply_entry = AsyncMock(return_value=_result())
    repo.list_transactions = AsyncMock(return_value=([], 0))
    return repo


@pytest.fixture
def event_bus():
    bus = MagicMock()
    bus.publish_event = AsyncMock()
    return bus


@pytest.fixture
def service(repository, event_bus):
    return CreditService(repository=repository, event_bus=event_bus)


class TestTransactionTypeSign:

    @pytest.mark.parametrize(
        "transaction_type,sign",
        [
            (CreditTransactionType.CREDIT, 1),
            (CreditTransactionType.REFUND, 1),
            (CreditTransactionType.DEBIT, -1),
        ],
    )
    def test_sign(self, transaction_type, sign):
        assert transaction_type.sign == sign


@pytest.mark.asyncio
class TestAmountValidation:

    @pytest.mark.parametrize("amount", [0, -5, 1.5, "10", True, None])
    async def test_invalid_amount_rejected(self, service, repository, amount):
        with pytest.raises(InvalidAmountError) as exc_info:
            await service.debit("org_1", amount)

        assert exc_info.value.amount == amount
        repository.apply_entry.assert_not_called()

    async def test_refund_validates_amount(self, service):
        with pytest.raises(InvalidAmountError):
            await service.refund("org_1", 0, idempotency_key="hardfail:message:msg_1")


@pytest.mark.asyncio
class TestEventPublishing:

    async def test_standalone_credit_publishes(self, service, event_bus):
        await service.credit("org_1", 10, reason="topup")

        event = event_bus.publish_event.call_args.args[0]
        assert event.type == EventType.CREDIT_CREDITED.value
        assert event.data["balance_after"] == 10

    async def test_joined_debit_does_not_publish(self, service, repository, event_bus):
        repository.apply_entry.return_value = _result(CreditTransactionType.DEBIT, amount=3, balance=7)

        await service.debit("org_1", 3, conn=object())

        event_bus.publish_event.assert_not_called()

    async def test_repeated_refund_does_not_publish(self, service, repository, event_bus):
        repository.apply_entry.return_value = _result(CreditTransactionType.REFUND, applied=False)

        result = await service.refund("org_1", 1, idempotency_key="hardfail:message:msg_1")

        assert result.applied is False
        event_bus.publish_event.assert_not_called()

    async def test_publish_failure_is_swallowed(self, service, event_bus):
        event_bus.publish_event.side_effect = RuntimeError("nats down")

        result = await service.credit("org_1", 10)

        assert result.balance == 10


@pytest.mark.asyncio
class TestPaging:

    @pytest.mark.parametrize(
        "page,page_size,limit,offset",
        [
            (1, 10, 10, 0),
            (3, 20, 20, 40),
            (0, 0, 1, 0),
            (2, 500, 100, 100),
        ],
    )
    async def test_paging_is_clamped(self, service, repository, page, page_size, limit, offset):
        await service.list_transactions("org_1", page=page, page_size=page_size)

        repository.list_transactions.assert_awaited_once_with("org_1", limit=limit, offset=offset)
