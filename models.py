import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserType(str, Enum):
    BUSINESS = "business"
    SHELTER = "shelter"


class ListingStatus(str, Enum):
    AVAILABLE = "available"
    CLAIMED = "claimed"
    EXPIRED = "expired"


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class User(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    user_type: UserType
    created_at: datetime = Field(default_factory=utcnow)


class Profile(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True, unique=True)
    user_type: UserType

    business_name: Optional[str] = None
    shelter_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    contact_person: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Listing(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    owner_id: str = Field(foreign_key="user.id", index=True)
    business_name: Optional[str] = None

    title: str
    description: str
    category: str
    quantity: float
    unit: str
    expires_at: datetime
    pickup_by: datetime
    location: str
    serves: Optional[str] = None
    image_url: Optional[str] = None

    status: ListingStatus = Field(default=ListingStatus.AVAILABLE, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class FoodRequest(SQLModel, table=True):
    # listing_id carries no foreign key: deleting a listing is allowed to
    # leave its requests behind.
    id: str = Field(default_factory=new_id, primary_key=True)
    listing_id: str = Field(index=True)
    requester_id: str = Field(foreign_key="user.id", index=True)
    shelter_name: Optional[str] = None

    status: RequestStatus = Field(default=RequestStatus.PENDING, index=True)
    message: str = ""
    pickup_time: Optional[str] = None
    pickup_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatRoom(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    listing_id: str = Field(index=True)
    business_id: str = Field(foreign_key="user.id", index=True)
    shelter_id: str = Field(foreign_key="user.id", index=True)

    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatMessage(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    chat_room_id: str = Field(foreign_key="chatroom.id", index=True)
    sender_id: str = Field(foreign_key="user.id")
    message: str
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
