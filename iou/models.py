from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, computed_field, field_validator


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"

    def inverse(self) -> "TransactionType":
        return TransactionType.DEBIT if self is TransactionType.CREDIT else TransactionType.CREDIT


class FriendRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class FriendRequestAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


class NotificationType(str, Enum):
    FRIEND_REQUEST = "friend_request"
    FRIEND_ACCEPTED = "friend_accepted"
    TX_ADDED = "tx_added"
    TX_UPDATED = "tx_updated"
    TX_DELETED = "tx_deleted"
    REMINDER = "reminder"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Read a datetime without an offset as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Stored entities


class User(BaseModel):
    id: UUID
    name: str
    email: str
    friends: list[UUID] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserSummary(BaseModel):
    id: UUID
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class Person(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    nickname: str = ""
    payment_address: str = ""
    friend_user_id: Optional[UUID] = None
    counterpart_person_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def is_friend(self) -> bool:
        return self.friend_user_id is not None


class Transaction(BaseModel):
    id: UUID
    person_id: UUID
    amount: Decimal
    description: str
    date: datetime
    type: TransactionType
    counterpart_transaction_id: Optional[UUID] = None
    added_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FriendRequest(BaseModel):
    id: UUID
    from_user_id: UUID
    to_user_id: UUID
    link_person_from_id: Optional[UUID] = None
    status: FriendRequestStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Notification(BaseModel):
    id: UUID
    user_id: UUID
    type: NotificationType
    message: str
    metadata: dict = Field(default_factory=dict)
    read: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Requests


class RegisterUserRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)


class UpdateProfileRequest(BaseModel):
    name: str = Field(..., min_length=1)


class SendFriendRequest(BaseModel):
    email: str = Field(..., description="Email of the user to befriend")
    person_id: Optional[UUID] = Field(
        default=None,
        description="Existing unlinked person to attach to the friendship once accepted",
    )

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "email": "bob@example.com",
            "person_id": "550e8400-e29b-41d4-a716-446655440000",
        }
    })


class RespondFriendRequest(BaseModel):
    request_id: UUID
    action: FriendRequestAction


class CancelFriendRequest(BaseModel):
    request_id: UUID


class CreatePersonRequest(BaseModel):
    name: str
    nickname: str = ""
    payment_address: str = ""


class UpdatePersonRequest(BaseModel):
    name: Optional[str] = None
    nickname: Optional[str] = None
    payment_address: Optional[str] = None


class NewTransaction(BaseModel):
    amount: Decimal
    description: str
    type: TransactionType
    date: Optional[datetime] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "amount": 250.00,
            "description": "Dinner",
            "type": "credit",
            "date": "2024-05-01T19:30:00Z",
        }
    })

    @field_validator("date")
    @classmethod
    def date_in_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class BulkTransactionRequest(NewTransaction):
    person_ids: list[UUID]


class TransactionPatch(BaseModel):
    amount: Optional[Decimal] = None
    description: Optional[str] = None
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None

    @field_validator("date")
    @classmethod
    def date_in_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class MarkReadRequest(BaseModel):
    ids: Optional[list[UUID]] = None


# Responses


class FriendRequestList(BaseModel):
    incoming: list[FriendRequest]
    outgoing: list[FriendRequest]


class FriendResponseResult(BaseModel):
    request: FriendRequest
    from_person: Optional[Person] = None
    to_person: Optional[Person] = None


class PersonWithTransactions(Person):
    transactions: list[Transaction] = Field(default_factory=list)
    balance: Decimal = Decimal("0")


class BulkTransactionResponse(BaseModel):
    message: str
    transactions: list[Transaction]


class CountResponse(BaseModel):
    ok: bool = True
    count: int
