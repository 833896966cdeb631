"""Chat between a shelter and the business that owns a listing."""

from typing import List, Optional

from sqlalchemy import func, or_, update
from sqlmodel import select

from cache import SHARED_VIEW_TTL, CacheKeys
from errors import NotFound, PermissionDenied
from models import ChatMessage, ChatRoom, Listing, User, UserType
from schemas import ChatMessageRead, ChatRoomDetail, ChatRoomRead, ProfileRead
from service import BaseService, Mutation, mutation


def _room_read(room: ChatRoom, listing_title: Optional[str] = None) -> ChatRoomRead:
    read = ChatRoomRead.model_validate(room)
    read.listing_title = listing_title
    return read


class ChatService(BaseService):
    def _get_room_for(self, caller: User, room_id: str) -> ChatRoom:
        room = self.session.get(ChatRoom, room_id)
        if room is None:
            raise NotFound("Chat not found")
        if caller.id not in (room.business_id, room.shelter_id):
            raise PermissionDenied("You do not have permission to view this chat")
        return room

    def create_chat_room(self, caller: Optional[User], listing_id: str) -> ChatRoomRead:
        """Open (or return the existing) chat between the caller and a listing's owner."""
        caller = self._require_caller(caller, "You must be logged in to start a chat")
        if caller.user_type != UserType.SHELTER:
            raise PermissionDenied("Only shelters can start a chat about a listing")

        with self._transaction():
            listing = self.session.get(Listing, listing_id)
            if listing is None:
                raise NotFound("Listing not found")

            room = self.session.exec(
                select(ChatRoom).where(
                    ChatRoom.listing_id == listing_id,
                    ChatRoom.shelter_id == caller.id,
                )
            ).first()
            if room is None:
                now = self.clock()
                room = ChatRoom(
                    listing_id=listing_id,
                    business_id=listing.owner_id,
                    shelter_id=caller.id,
                    created_at=now,
                    updated_at=now,
                )
                self.session.add(room)
            title = listing.title

        return _room_read(room, title)

    def get_chat_rooms(self, caller: Optional[User]) -> List[ChatRoomRead]:
        caller = self._require_caller(caller, "You must be logged in to view chats")

        with self._reading():
            rows = self.session.exec(
                select(ChatRoom, Listing.title)
                .join(Listing, Listing.id == ChatRoom.listing_id, isouter=True)
                .where(or_(ChatRoom.business_id == caller.id, ChatRoom.shelter_id == caller.id))
                .order_by(ChatRoom.updated_at.desc())
            ).all()
            return [_room_read(room, title) for room, title in rows]

    def get_chat_room(self, caller: Optional[User], room_id: str) -> ChatRoomDetail:
        caller = self._require_caller(caller, "You must be logged in to view a chat")

        with self._reading():
            room = self._get_room_for(caller, room_id)
            listing = self.session.get(Listing, room.listing_id)
            other_id = room.shelter_id if caller.id == room.business_id else room.business_id
            profile = self._profile(other_id)
            return ChatRoomDetail(
                room=_room_read(room, listing.title if listing else None),
                other_profile=ProfileRead.model_validate(profile) if profile else None,
            )

    @mutation
    def get_messages(self, caller: Optional[User], room_id: str) -> Mutation:
        """Return a chat's messages, oldest first, marking the other side's as read."""
        caller = self._require_caller(caller, "You must be logged in to view messages")

        with self._transaction():
            self._get_room_for(caller, room_id)
            marked = self.session.exec(
                update(ChatMessage)
                .where(
                    ChatMessage.chat_room_id == room_id,
                    ChatMessage.sender_id != caller.id,
                    ChatMessage.is_read == False,  # noqa: E712
                )
                .values(is_read=True)
            ).rowcount
            messages = self.session.exec(
                select(ChatMessage)
                .where(ChatMessage.chat_room_id == room_id)
                .order_by(ChatMessage.created_at)
            ).all()
            result = [ChatMessageRead.model_validate(m) for m in messages]

        stale = frozenset({CacheKeys.unread_count(caller.id)}) if marked else frozenset()
        return Mutation(result, stale)

    @mutation
    def send_message(self, caller: Optional[User], room_id: str, text: str) -> Mutation:
        caller = self._require_caller(caller, "You must be logged in to send a message")

        with self._transaction():
            room = self._get_room_for(caller, room_id)
            now = self.clock()
            message = ChatMessage(
                chat_room_id=room.id,
                sender_id=caller.id,
                message=text,
                is_read=False,
                created_at=now,
            )
            room.last_message = text
            room.last_message_time = now
            room.updated_at = now
            self.session.add(message)
            self.session.add(room)
            recipient = room.shelter_id if caller.id == room.business_id else room.business_id

        return Mutation(
            ChatMessageRead.model_validate(message),
            frozenset({CacheKeys.unread_count(recipient)}),
        )

    def get_unread_count(self, caller: Optional[User]) -> int:
        """Unread messages across all of the caller's chats; 0 when logged out."""
        if caller is None:
            return 0

        def load():
            return self.session.exec(
                select(func.count(ChatMessage.id))
                .join(ChatRoom, ChatRoom.id == ChatMessage.chat_room_id)
                .where(
                    or_(ChatRoom.business_id == caller.id, ChatRoom.shelter_id == caller.id),
                    ChatMessage.sender_id != caller.id,
                    ChatMessage.is_read == False,  # noqa: E712
                )
            ).one()

        return self._cached(CacheKeys.unread_count(caller.id), SHARED_VIEW_TTL, load)
