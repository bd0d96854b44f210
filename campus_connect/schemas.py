from datetime import datetime
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, NonNegativeInt, PositiveInt, field_validator, model_validator
from pydantic.config import ConfigDict

UserRole = Literal["student", "admin"]
RegistrationStatus = Literal["registered", "cancelled", "attended", "no_show"]
OrderStatus = Literal["pending", "paid", "cancelled", "refunded"]


# -------------------- Review targets --------------------
# Stored as two nullable FKs plus a check constraint; handled here as a tagged variant.

class EventTarget(BaseModel):
    kind: Literal["event"] = "event"
    event_id: PositiveInt

    def ids(self) -> Tuple[Optional[int], Optional[int]]:
        return self.event_id, None


class MerchTarget(BaseModel):
    kind: Literal["merch"] = "merch"
    merch_id: PositiveInt

    def ids(self) -> Tuple[Optional[int], Optional[int]]:
        return None, self.merch_id


class BothTarget(BaseModel):
    kind: Literal["both"] = "both"
    event_id: PositiveInt
    merch_id: PositiveInt

    def ids(self) -> Tuple[Optional[int], Optional[int]]:
        return self.event_id, self.merch_id


ReviewTarget = Annotated[Union[EventTarget, MerchTarget, BothTarget], Field(discriminator="kind")]


def target_from_ids(event_id: Optional[int], merch_id: Optional[int]):
    if event_id is not None and merch_id is not None:
        return BothTarget(event_id=event_id, merch_id=merch_id)
    if event_id is not None:
        return EventTarget(event_id=event_id)
    if merch_id is not None:
        return MerchTarget(merch_id=merch_id)
    raise ValueError("review needs an event or a merch target")


# -------------------- Users --------------------

def _email_shape(v: str) -> str:
    v = v.strip()
    local, sep, domain = v.partition("@")
    if not sep or not local or not domain:
        raise ValueError("email must look like name@domain")
    return v


class UserCreate(BaseModel):
    role: UserRole = "student"
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    password: Optional[str] = Field(default=None, min_length=1)
    # already-hashed credential, e.g. when importing accounts
    password_hash: Optional[str] = Field(default=None, max_length=255)

    @field_validator("email")
    def email_shape(cls, v: str):
        return _email_shape(v)

    @model_validator(mode="after")
    def one_credential(self):
        if (self.password is None) == (self.password_hash is None):
            raise ValueError("provide exactly one of password or password_hash")
        return self


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)

    @field_validator("email")
    def email_shape(cls, v: Optional[str]):
        return None if v is None else _email_shape(v)


class UserRead(BaseModel):
    id: int
    role: str
    first_name: str
    last_name: str
    email: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# -------------------- Events --------------------

class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    location: str = Field(..., min_length=1, max_length=255)
    starts_at: datetime
    ends_at: Optional[datetime] = None
    capacity: Optional[NonNegativeInt] = None
    created_by: Optional[PositiveInt] = None

    @model_validator(mode="after")
    def ends_after_start(self):
        if self.ends_at is not None and self.ends_at < self.starts_at:
            raise ValueError("ends_at must not be before starts_at")
        return self


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    capacity: Optional[NonNegativeInt] = None


class EventRead(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    location: str
    starts_at: datetime
    ends_at: Optional[datetime] = None
    capacity: Optional[int] = None
    created_by: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class RegistrationRead(BaseModel):
    id: int
    user_id: int
    event_id: int
    status: str
    registered_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# -------------------- Merch --------------------

class MerchCreate(BaseModel):
    event_id: Optional[PositiveInt] = None
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    price_cents: NonNegativeInt
    stock_qty: int = 0
    is_active: bool = True


class MerchUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    price_cents: Optional[NonNegativeInt] = None
    is_active: Optional[bool] = None


class MerchRead(BaseModel):
    id: int
    event_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    price_cents: int
    stock_qty: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# -------------------- Orders --------------------

class OrderItemIn(BaseModel):
    merch_id: PositiveInt
    quantity: PositiveInt = 1


class OrderCreate(BaseModel):
    user_id: PositiveInt
    status: OrderStatus = "pending"
    items: List[OrderItemIn] = Field(..., min_length=1)

    @field_validator("items")
    def one_line_per_merch(cls, v: List[OrderItemIn]):
        # one row per (order, merch); callers raise the quantity instead
        seen = set()
        for item in v:
            if item.merch_id in seen:
                raise ValueError(f"merch {item.merch_id} listed twice; combine the quantities")
            seen.add(item.merch_id)
        return v


class OrderItemRead(BaseModel):
    id: int
    order_id: int
    merch_id: int
    quantity: int
    unit_price_cents: int

    model_config = ConfigDict(from_attributes=True)


class OrderRead(BaseModel):
    id: int
    user_id: int
    status: str
    total_cents: int
    items: List[OrderItemRead] = []

    model_config = ConfigDict(from_attributes=True)


# -------------------- Reviews & favorites --------------------

class ReviewCreate(BaseModel):
    user_id: PositiveInt
    target: ReviewTarget
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class ReviewRead(BaseModel):
    id: int
    user_id: int
    event_id: Optional[int] = None
    merch_id: Optional[int] = None
    rating: int
    comment: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class FavoriteRead(BaseModel):
    id: int
    user_id: int
    event_id: int

    model_config = ConfigDict(from_attributes=True)
