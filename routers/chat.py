from typing import List

from fastapi import APIRouter

from dependencies import ChatDep
from schemas import (
    ChatMessageCreate,
    ChatMessageRead,
    ChatRoomDetail,
    ChatRoomRead,
    UnreadCount,
)
from .auth import OptionalUserDep

router = APIRouter(tags=["chat"])


@router.post("/listings/{listing_id}", response_model=ChatRoomRead)
def start_chat(listing_id: str, chat: ChatDep, current: OptionalUserDep):
    """
    Open a chat with the business that owns a listing (or return the existing one).
    """
    return chat.create_chat_room(current, listing_id)


@router.get("/rooms", response_model=List[ChatRoomRead])
def list_rooms(chat: ChatDep, current: OptionalUserDep):
    return chat.get_chat_rooms(current)


@router.get("/unread-count", response_model=UnreadCount)
def unread_count(chat: ChatDep, current: OptionalUserDep):
    return UnreadCount(count=chat.get_unread_count(current))


@router.get("/rooms/{room_id}", response_model=ChatRoomDetail)
def get_room(room_id: str, chat: ChatDep, current: OptionalUserDep):
    return chat.get_chat_room(current, room_id)


@router.get("/rooms/{room_id}/messages", response_model=List[ChatMessageRead])
def list_messages(room_id: str, chat: ChatDep, current: OptionalUserDep):
    """
    Messages oldest first. Messages from the other participant are marked read.
    """
    return chat.get_messages(current, room_id)


@router.post("/rooms/{room_id}/messages", response_model=ChatMessageRead, status_code=201)
def send_message(
    room_id: str,
    message_in: ChatMessageCreate,
    chat: ChatDep,
    current: OptionalUserDep,
):
    return chat.send_message(current, room_id, message_in.message)
