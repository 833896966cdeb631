from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from models import ListingStatus, RequestStatus, UserType


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    user_type: UserType

    business_name: Optional[str] = None
    shelter_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    contact_person: Optional[str] = None


class LoginData(BaseModel):
    email: EmailStr
    password: str


class ProfileRead(BaseModel):
    user_id: str
    user_type: UserType
    business_name: Optional[str] = None
    shelter_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    contact_person: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class UserRead(BaseModel):
    id: str
    email: EmailStr
    user_type: UserType
    profile: Optional[ProfileRead] = None


class ListingCreate(BaseModel):
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


LISTING_REQUIRED_FIELDS = (
    "title",
    "description",
    "category",
    "quantity",
    "unit",
    "expires_at",
    "pickup_by",
    "location",
)


class ListingUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    expires_at: Optional[datetime] = None
    pickup_by: Optional[datetime] = None
    location: Optional[str] = None
    serves: Optional[str] = None
    image_url: Optional[str] = None

    @model_validator(mode="after")
    def reject_null_required_fields(self):
        # A patch may leave these out, but may not clear them.
        cleared = [
            name for name in LISTING_REQUIRED_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"These fields cannot be null: {', '.join(cleared)}")
        return self


class ListingRead(BaseModel):
    id: str
    owner_id: str
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
    status: ListingStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ListingSummary(BaseModel):
    """The slice of a listing shown next to a request."""

    id: str
    title: str
    category: str
    status: ListingStatus
    business_name: Optional[str] = None
    location: str
    expires_at: datetime
    pickup_by: datetime
    quantity: float
    unit: str

    model_config = ConfigDict(from_attributes=True)


class RequestCreate(BaseModel):
    message: str = ""
    pickup_time: Optional[str] = None
    pickup_notes: Optional[str] = None


class PickupDetails(BaseModel):
    time: Optional[str] = None
    notes: Optional[str] = None


class RequestRead(BaseModel):
    id: str
    listing_id: str
    requester_id: str
    shelter_name: Optional[str] = None
    status: RequestStatus
    message: str
    pickup_time: Optional[str] = None
    pickup_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RequestWithListing(RequestRead):
    # None when the listing has been deleted since the request was filed.
    listing: Optional[ListingSummary] = None


class ChatRoomRead(BaseModel):
    id: str
    listing_id: str
    business_id: str
    shelter_id: str
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    listing_title: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ChatRoomDetail(BaseModel):
    room: ChatRoomRead
    other_profile: Optional[ProfileRead] = None


class ChatMessageCreate(BaseModel):
    message: str = Field(min_length=1)


class ChatMessageRead(BaseModel):
    id: str
    chat_room_id: str
    sender_id: str
    message: str
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnreadCount(BaseModel):
    count: int


class ImageAnalysisRequest(BaseModel):
    image: str = Field(description="Base64 image data, with or without a data: URL prefix")


class FoodAnalysis(BaseModel):
    title: str = ""
    description: str = ""
    category: str = "other"
    quantity: float = 1
    unit: str = "servings"
    serving_size: str = ""
