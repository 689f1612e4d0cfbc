from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.config import ConfigDict

from .models import OnlinePaymentType, PaymentMode, Role
from .utils import to_instant

ALL = "all"


def _instant(v):
    if v is None or v == "":
        return None
    return to_instant(v)


# -------------------- Users --------------------

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")
    role: Role = Role.user
    password: Optional[str] = Field(default=None, min_length=6)


class UserUpdate(UserCreate):
    """Full replacement of a user; password is only changed when supplied."""


class UserRead(BaseModel):
    id: str
    name: str
    email: str
    role: Role = Role.user

    model_config = ConfigDict(from_attributes=True, frozen=True)


# -------------------- Cards --------------------

class CardCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    card_number: Optional[str] = Field(default=None, pattern=r"^\d{16}$")
    user_id: Optional[str] = None

    @field_validator("card_number", mode="before")
    def strip_separators(cls, v):
        if isinstance(v, str):
            v = v.replace(" ", "").replace("-", "")
            return v or None
        return v


class CardRead(BaseModel):
    id: str
    name: str
    card_number: Optional[str] = None
    user_id: str

    model_config = ConfigDict(from_attributes=True, frozen=True)


# -------------------- Orders --------------------

class OrderCreate(BaseModel):
    model: str = Field(..., min_length=2, max_length=100)
    variant: str = Field(..., min_length=2, max_length=100)
    order_date: datetime
    ordered_price: Decimal = Field(..., ge=0)
    cashback: Decimal = Field(default=Decimal("0"), ge=0)
    user_id: Optional[str] = None
    card_id: str
    delivery_date: Optional[datetime] = None
    selling_price: Optional[Decimal] = Field(default=None, ge=0)
    dealer: Optional[str] = Field(default=None, max_length=100)

    parse_dates = field_validator("order_date", "delivery_date", mode="before")(_instant)

    @field_validator("cashback", mode="before")
    def default_cashback(cls, v):
        return Decimal("0") if v in (None, "") else v


class OrderRead(BaseModel):
    id: str
    model: str
    variant: str
    order_date: datetime
    ordered_price: Decimal
    cashback: Decimal = Decimal("0")
    user_id: str
    card_id: str
    delivery_date: Optional[datetime] = None
    selling_price: Optional[Decimal] = None
    dealer: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    parse_dates = field_validator("order_date", "delivery_date", mode="before")(_instant)


class OrderRow(OrderRead):
    user_name: str
    card_name: str
    net_cost: Decimal
    profit: Optional[Decimal] = None
    profit_percentage: Optional[Decimal] = None
    status: str


# -------------------- Transactions --------------------

class TransactionCreate(BaseModel):
    date: datetime
    amount: Decimal = Field(..., gt=0)
    dealer: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    user_id: Optional[str] = None
    card_id: str
    payment_mode: PaymentMode = PaymentMode.cash
    online_payment_type: Optional[OnlinePaymentType] = None

    parse_dates = field_validator("date", mode="before")(_instant)

    @model_validator(mode="after")
    def payment_type_matches_mode(self):
        if self.payment_mode == PaymentMode.online and self.online_payment_type is None:
            raise ValueError("online_payment_type is required for online payments")
        if self.payment_mode == PaymentMode.cash and self.online_payment_type is not None:
            raise ValueError("online_payment_type is only allowed for online payments")
        return self


class TransactionRead(BaseModel):
    id: str
    date: datetime
    amount: Decimal
    dealer: str
    description: Optional[str] = None
    user_id: str
    card_id: str
    payment_mode: PaymentMode = PaymentMode.cash
    online_payment_type: Optional[OnlinePaymentType] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    parse_dates = field_validator("date", mode="before")(_instant)


# -------------------- Dashboard --------------------

class FilterCriteria(BaseModel):
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    user_id: str = ALL
    card_id: str = ALL
    dealer: str = ALL

    model_config = ConfigDict(frozen=True)

    parse_dates = field_validator("date_from", "date_to", mode="before")(_instant)

    @field_validator("user_id", "card_id", "dealer", mode="before")
    def blank_means_all(cls, v):
        return ALL if v in (None, "") else v


class Stats(BaseModel):
    total_phones: int = 0
    sold_phones: int = 0
    total_invested: Decimal = Decimal("0")
    total_invested_after_cashback: Decimal = Decimal("0")
    total_received: Decimal = Decimal("0")
    total_pending: Decimal = Decimal("0")
    total_profit: Decimal = Decimal("0")
    avg_profit: Decimal = Decimal("0")


class Dashboard(BaseModel):
    criteria: FilterCriteria
    stats: Stats
    card_bills: Dict[str, Decimal] = {}
    cashback_total: Decimal = Decimal("0")
    dealers: List[str] = []
    card_options: List[CardRead] = []
    orders: List[OrderRow] = []


# -------------------- Auth --------------------

class LoginRequest(BaseModel):
    email: str
    password: str


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
