"""Find-or-create of the single conversation between two users."""

import logging
from typing import Optional, Tuple
from uuid import UUID

from auth.models import User, UserRole
from database.exceptions import DuplicateConversationError
from errors import InvalidArgumentError, NotFoundError
from .models import Conversation

logger = logging.getLogger(__name__)


def assign_roles(
    requester: User,
    counterpart: User,
    listing_owner_id: Optional[UUID] = None
) -> Tuple[UUID, UUID]:
    """Decide which participant is the buyer and which the seller.

    The listing owner is always the seller. Without a listing the declared
    account roles decide, and when neither account is a buyer the requester
    takes the buyer side.

    Returns:
        (buyer_id, seller_id)
    """
    if listing_owner_id is not None:
        if listing_owner_id == requester.id:
            return counterpart.id, requester.id
        return requester.id, counterpart.id

    if requester.role == UserRole.BUYER:
        return requester.id, counterpart.id
    if counterpart.role == UserRole.BUYER:
        return counterpart.id, requester.id
    return requester.id, counterpart.id


class ConversationResolver:
    """Maps an unordered pair of users onto exactly one conversation."""

    def __init__(self, chat_store, user_store):
        self.chat_store = chat_store
        self.user_store = user_store

    async def resolve(
        self,
        requester_id: UUID,
        counterpart_id: UUID,
        listing_id: Optional[UUID] = None
    ) -> Tuple[Conversation, bool]:
        """Find or create the conversation between two users.

        Args:
            requester_id: User asking for the conversation
            counterpart_id: The other participant
            listing_id: Optional listing the contact is about

        Returns:
            The conversation and whether this call created it

        Raises:
            InvalidArgumentError: Self-conversation or listing owned by someone else
            NotFoundError: Unknown counterpart, requester or listing
        """
        if requester_id == counterpart_id:
            raise InvalidArgumentError("Cannot start a conversation with yourself")

        counterpart = await self.user_store.get_user(counterpart_id)
        if not counterpart:
            raise NotFoundError(f"User {counterpart_id} not found")

        requester = await self.user_store.get_user(requester_id)
        if not requester:
            raise NotFoundError(f"User {requester_id} not found")

        listing_owner_id = None
        if listing_id is not None:
            listing_owner_id = await self.chat_store.get_listing_owner(listing_id)
            if listing_owner_id is None:
                raise NotFoundError(f"Listing {listing_id} not found")
            if listing_owner_id not in (requester_id, counterpart_id):
                raise InvalidArgumentError(
                    f"Listing {listing_id} does not belong to either participant"
                )

        existing = await self.chat_store.find_conversation_by_pair(requester_id, counterpart_id)
        if existing:
            return await self._backfill_listing(existing, listing_id), False

        buyer_id, seller_id = assign_roles(requester, counterpart, listing_owner_id)
        try:
            conversation = await self.chat_store.create_conversation(buyer_id, seller_id, listing_id)
        except DuplicateConversationError:
            # Lost a first-contact race; the other caller's row is the conversation
            logger.info(f"Concurrent creation for {buyer_id}/{seller_id}, re-reading")
            existing = await self.chat_store.find_conversation_by_pair(requester_id, counterpart_id)
            if not existing:
                raise
            return await self._backfill_listing(existing, listing_id), False

        logger.info(
            f"Created conversation {conversation.id} "
            f"(buyer={buyer_id}, seller={seller_id}, listing={listing_id})"
        )
        return conversation, True

    async def _backfill_listing(self, conversation: Conversation, listing_id: Optional[UUID]) -> Conversation:
        if listing_id is None or conversation.listing_id is not None:
            return conversation
        logger.info(f"Attaching listing {listing_id} to conversation {conversation.id}")
        return await self.chat_store.set_conversation_listing(conversation.id, listing_id)
