"""Tests for wallet ledger operations."""

import uuid
from decimal import Decimal

import pytest

from errors import InvalidArgumentError, NotFoundError
from wallet import (
    InsufficientBalanceError,
    TransactionFinalizedError,
    TransactionQuery,
    TransactionStatus,
    TransactionType
)


@pytest.mark.asyncio
async def test_withdraw_debits_and_stays_pending(services, wallet_store, funded, seller):
    funded(seller, 300000)

    transaction, balance = await services.wallet.withdraw(
        seller.id, Decimal("100000"), "Vietcombank", "0071000123456"
    )

    assert balance == Decimal("200000")
    assert transaction.amount == Decimal("-100000")
    assert transaction.type == TransactionType.WITHDRAW
    assert transaction.status == TransactionStatus.PENDING
    assert transaction.description == "Rút tiền về Vietcombank - 0071000123456"


@pytest.mark.asyncio
async def test_withdraw_guards(services, wallet_store, funded, seller):
    funded(seller, 50000)

    with pytest.raises(InsufficientBalanceError):
        await services.wallet.withdraw(seller.id, Decimal("50001"), "ACB", "123")
    with pytest.raises(InvalidArgumentError):
        await services.wallet.withdraw(seller.id, Decimal("0"), "ACB", "123")

    assert await services.wallet.balance(seller.id) == Decimal("50000")
    assert not wallet_store.transactions


@pytest.mark.asyncio
async def test_charge_premium_upgrade(services, funded, seller, chat_store):
    funded(seller, 100000)
    listing_id = chat_store.add_listing(seller.id)

    transaction, balance = await services.wallet.charge(
        seller.id, Decimal("99000"), TransactionType.PREMIUM_UPGRADE, "Nâng cấp Premium 30 ngày", listing_id
    )

    assert balance == Decimal("1000")
    assert transaction.status == TransactionStatus.COMPLETED
    assert transaction.listing_id == listing_id

    with pytest.raises(InsufficientBalanceError):
        await services.wallet.charge(seller.id, Decimal("99000"), TransactionType.PREMIUM_UPGRADE, "again")


@pytest.mark.asyncio
async def test_add_commission(services, seller):
    transaction, balance = await services.wallet.add_commission(
        seller.id, Decimal("2500000"), None, "Hoa hồng bán nhà"
    )
    assert balance == Decimal("2500000")
    assert transaction.type == TransactionType.COMMISSION
    assert transaction.status == TransactionStatus.COMPLETED


@pytest.mark.asyncio
async def test_admin_adjust(services, funded, buyer):
    funded(buyer, 10000)

    added, balance = await services.wallet.admin_adjust(buyer.id, Decimal("5000"), add=True)
    assert balance == Decimal("15000")
    assert added.type == TransactionType.ADMIN_ADD
    assert added.description == "Admin cộng tiền: 5000 VNĐ"

    deducted, balance = await services.wallet.admin_adjust(
        buyer.id, Decimal("15000"), add=False, description="Hoàn phí"
    )
    assert balance == Decimal("0")
    assert deducted.amount == Decimal("-15000")
    assert deducted.description == "Hoàn phí"

    with pytest.raises(InsufficientBalanceError):
        await services.wallet.admin_adjust(buyer.id, Decimal("1"), add=False)


@pytest.mark.asyncio
async def test_admin_adjust_unknown_user(services):
    with pytest.raises(NotFoundError):
        await services.wallet.admin_adjust(uuid.uuid4(), Decimal("1000"), add=True)


@pytest.mark.asyncio
async def test_settle_pending_deposit_credits(services, wallet_store, buyer):
    deposit = await wallet_store.create_transaction(
        buyer.id, Decimal("70000"), TransactionType.DEPOSIT, reference_id="BANK-001",
        description="Chuyển khoản"
    )

    settled = await services.wallet.settle_transaction(deposit.id, TransactionStatus.COMPLETED, "Đã đối soát")

    assert settled.status == TransactionStatus.COMPLETED
    assert settled.description == "Chuyển khoản - Admin: Đã đối soát"
    assert await services.wallet.balance(buyer.id) == Decimal("70000")


@pytest.mark.asyncio
async def test_settled_transaction_is_terminal(services, wallet_store, buyer):
    deposit = await wallet_store.create_transaction(buyer.id, Decimal("70000"), TransactionType.DEPOSIT)
    await services.wallet.settle_transaction(deposit.id, TransactionStatus.FAILED)

    with pytest.raises(TransactionFinalizedError):
        await services.wallet.settle_transaction(deposit.id, TransactionStatus.COMPLETED)
    assert await services.wallet.balance(buyer.id) == Decimal("0")


@pytest.mark.asyncio
async def test_settle_completed_withdraw_does_not_credit(services, funded, seller):
    funded(seller, 100000)
    withdrawal, _ = await services.wallet.withdraw(seller.id, Decimal("40000"), "ACB", "123")

    await services.wallet.settle_transaction(withdrawal.id, TransactionStatus.COMPLETED)
    assert await services.wallet.balance(seller.id) == Decimal("60000")


@pytest.mark.asyncio
async def test_settle_rejects_pending_target_and_unknown(services, wallet_store, buyer):
    deposit = await wallet_store.create_transaction(buyer.id, Decimal("70000"), TransactionType.DEPOSIT)
    with pytest.raises(InvalidArgumentError):
        await services.wallet.settle_transaction(deposit.id, TransactionStatus.PENDING)
    with pytest.raises(NotFoundError):
        await services.wallet.settle_transaction(uuid.uuid4(), TransactionStatus.COMPLETED)


@pytest.mark.asyncio
async def test_list_transactions_filters_and_pages(services, funded, buyer):
    funded(buyer, 0)
    for _ in range(3):
        await services.wallet.admin_adjust(buyer.id, Decimal("1000"), add=True)
    await services.wallet.admin_adjust(buyer.id, Decimal("500"), add=False)

    page, total = await services.wallet.list_transactions(
        TransactionQuery(user_id=buyer.id, type=TransactionType.ADMIN_ADD, page=2, limit=2)
    )
    assert total == 3
    assert len(page) == 1

    everything, total = await services.wallet.list_transactions(TransactionQuery(user_id=buyer.id))
    assert total == 4
    assert everything[0].type == TransactionType.ADMIN_DEDUCT
