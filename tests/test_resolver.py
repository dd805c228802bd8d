"""Tests for conversation resolution."""

import asyncio
import uuid

import pytest
import pytest_asyncio

from auth.models import UserRole
from chat import ConversationResolver, assign_roles
from errors import InvalidArgumentError, NotFoundError


@pytest_asyncio.fixture
async def resolver(chat_store, users):
    return ConversationResolver(chat_store, users)


@pytest.mark.asyncio
async def test_resolve_creates_then_reuses(resolver, buyer, seller):
    conversation, created = await resolver.resolve(buyer.id, seller.id)
    assert created
    assert conversation.buyer_id == buyer.id
    assert conversation.seller_id == seller.id
    assert conversation.unread_count_buyer == 0
    assert conversation.unread_count_seller == 0

    again, created = await resolver.resolve(buyer.id, seller.id)
    assert not created
    assert again.id == conversation.id


@pytest.mark.asyncio
async def test_resolve_is_symmetric(resolver, chat_store, buyer, seller):
    first, _ = await resolver.resolve(seller.id, buyer.id)
    second, created = await resolver.resolve(buyer.id, seller.id)

    assert not created
    assert first.id == second.id
    assert len(chat_store.conversations) == 1


@pytest.mark.asyncio
async def test_resolve_is_symmetric_without_buyer_role(resolver, seller, other_seller):
    first, _ = await resolver.resolve(seller.id, other_seller.id)
    second, _ = await resolver.resolve(other_seller.id, seller.id)
    assert first.id == second.id
    # Neither account is a buyer, so the first requester took the buyer side
    assert first.buyer_id == seller.id


@pytest.mark.asyncio
async def test_listing_owner_is_seller(resolver, chat_store, buyer, seller):
    listing_id = chat_store.add_listing(seller.id)

    # Seller starts the contact about their own listing
    conversation, _ = await resolver.resolve(seller.id, buyer.id, listing_id)
    assert conversation.seller_id == seller.id
    assert conversation.buyer_id == buyer.id
    assert conversation.listing_id == listing_id


@pytest.mark.asyncio
async def test_listing_owner_overrides_account_roles(resolver, chat_store, users):
    owner = users.add("Phạm Văn Đức", UserRole.BUYER)
    visitor = users.add("Võ Thị Em", UserRole.SELLER)
    listing_id = chat_store.add_listing(owner.id)

    conversation, _ = await resolver.resolve(visitor.id, owner.id, listing_id)
    assert conversation.seller_id == owner.id
    assert conversation.buyer_id == visitor.id


def test_assign_roles_without_listing(users):
    buyer = users.add("Buyer", UserRole.BUYER)
    seller = users.add("Seller", UserRole.SELLER)
    admin = users.add("Admin", UserRole.ADMIN)

    assert assign_roles(buyer, seller) == (buyer.id, seller.id)
    assert assign_roles(seller, buyer) == (buyer.id, seller.id)
    assert assign_roles(admin, seller) == (admin.id, seller.id)
    assert assign_roles(seller, admin) == (seller.id, admin.id)


@pytest.mark.asyncio
async def test_listing_is_backfilled(resolver, chat_store, buyer, seller):
    conversation, _ = await resolver.resolve(buyer.id, seller.id)
    assert conversation.listing_id is None

    listing_id = chat_store.add_listing(seller.id)
    updated, created = await resolver.resolve(buyer.id, seller.id, listing_id)
    assert not created
    assert updated.id == conversation.id
    assert updated.listing_id == listing_id


@pytest.mark.asyncio
async def test_existing_listing_is_kept(resolver, chat_store, buyer, seller):
    first_listing = chat_store.add_listing(seller.id)
    second_listing = chat_store.add_listing(seller.id)

    await resolver.resolve(buyer.id, seller.id, first_listing)
    conversation, _ = await resolver.resolve(buyer.id, seller.id, second_listing)
    assert conversation.listing_id == first_listing


@pytest.mark.asyncio
async def test_self_conversation_rejected(resolver, buyer):
    with pytest.raises(InvalidArgumentError):
        await resolver.resolve(buyer.id, buyer.id)


@pytest.mark.asyncio
async def test_unknown_counterpart(resolver, buyer):
    with pytest.raises(NotFoundError):
        await resolver.resolve(buyer.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_unknown_listing(resolver, buyer, seller):
    with pytest.raises(NotFoundError):
        await resolver.resolve(buyer.id, seller.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_listing_of_third_party_rejected(resolver, chat_store, buyer, seller, other_seller):
    listing_id = chat_store.add_listing(other_seller.id)
    with pytest.raises(InvalidArgumentError):
        await resolver.resolve(buyer.id, seller.id, listing_id)
    assert not chat_store.conversations


@pytest.mark.asyncio
async def test_concurrent_first_contact_yields_one_conversation(resolver, chat_store, buyer, seller):
    (first, first_created), (second, second_created) = await asyncio.gather(
        resolver.resolve(buyer.id, seller.id),
        resolver.resolve(seller.id, buyer.id)
    )

    assert first.id == second.id
    assert sorted([first_created, second_created]) == [False, True]
    assert chat_store.create_calls == 2
    assert len(chat_store.conversations) == 1
