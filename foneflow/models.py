import enum
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from .db import Base


class Role(str, enum.Enum):
    admin = "admin"
    user = "user"


class PaymentMode(str, enum.Enum):
    cash = "cash"
    online = "online"


class OnlinePaymentType(str, enum.Enum):
    upi = "upi"
    bank_transfer = "bank_transfer"


def new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False, unique=True, index=True)
    # 'admin' or 'user'; at least one admin must exist at all times
    role = Column(String, nullable=False, default=Role.user.value, index=True)
    # Nullable for users that have never been given a password
    password_hash = Column(String, nullable=True)

    cards = relationship("CreditCard", back_populates="user")
    orders = relationship("Order", back_populates="user")
    transactions = relationship("Transaction", back_populates="user")


class CreditCard(Base):
    __tablename__ = "cards"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    card_number = Column(String(16), nullable=True)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)

    user = relationship("User", back_populates="cards")
    orders = relationship("Order", back_populates="card")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_id)
    model = Column(String, nullable=False)
    variant = Column(String, nullable=False)
    order_date = Column(DateTime, nullable=False, index=True)
    ordered_price = Column(Numeric(12, 2), nullable=False)
    cashback = Column(Numeric(12, 2), nullable=False, default=0)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    card_id = Column(String(32), ForeignKey("cards.id"), nullable=False, index=True)
    delivery_date = Column(DateTime, nullable=True)
    # Presence means the phone has been sold
    selling_price = Column(Numeric(12, 2), nullable=True)
    dealer = Column(String, nullable=True, index=True)

    user = relationship("User", back_populates="orders")
    card = relationship("CreditCard", back_populates="orders")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(32), primary_key=True, default=new_id)
    date = Column(DateTime, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    dealer = Column(String, nullable=False)
    description = Column(String, nullable=True)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    card_id = Column(String(32), ForeignKey("cards.id"), nullable=False, index=True)
    payment_mode = Column(String, nullable=False, default=PaymentMode.cash.value)
    online_payment_type = Column(String, nullable=True)

    user = relationship("User", back_populates="transactions")
