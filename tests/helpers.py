from datetime import datetime
from decimal import Decimal
from itertools import count

from foneflow.models import Role
from foneflow.schemas import CardRead, OrderRead, TransactionRead, UserRead
from foneflow.store import Collections

_ids = count(1)


def _id(prefix):
    return f"{prefix}{next(_ids)}"


def make_user(role=Role.user, **kw):
    uid = kw.pop("id", None) or _id("u")
    return UserRead(id=uid, name=kw.pop("name", uid.upper()), email=kw.pop("email", f"{uid}@example.com"), role=role)


def make_card(user, **kw):
    return CardRead(id=kw.pop("id", None) or _id("c"), name=kw.pop("name", "HDFC Millennia"), user_id=user.id, **kw)


def make_order(user, card, ordered_price="1000", cashback="0", selling_price=None, order_date=datetime(2024, 1, 10), **kw):
    return OrderRead(
        id=kw.pop("id", None) or _id("o"),
        model=kw.pop("model", "iPhone 15"),
        variant=kw.pop("variant", "128GB Black"),
        order_date=order_date,
        ordered_price=Decimal(ordered_price),
        cashback=Decimal(cashback),
        selling_price=Decimal(selling_price) if selling_price is not None else None,
        user_id=user.id,
        card_id=card.id if card is not None else kw.pop("card_id"),
        **kw,
    )


def make_transaction(user, card, amount="500", date=datetime(2024, 1, 15), **kw):
    return TransactionRead(
        id=kw.pop("id", None) or _id("t"),
        date=date,
        amount=Decimal(amount),
        dealer=kw.pop("dealer", "Mobile Hub"),
        user_id=user.id,
        card_id=card.id if card is not None else kw.pop("card_id"),
        **kw,
    )


def two_user_world():
    """An admin, two regular users each with one card, orders and a payment."""
    admin = make_user(Role.admin, id="admin")
    alice = make_user(id="alice")
    bob = make_user(id="bob")
    card_a = make_card(alice, id="card_a")
    card_b = make_card(bob, id="card_b")
    orders = (
        make_order(alice, card_a, "1000", "100", "1200", id="o1", dealer="Mobile Hub"),
        make_order(bob, card_b, "2000", "0", None, id="o2", dealer="Phone Point"),
        make_order(alice, card_a, "1500", "50", None, id="o3", order_date=datetime(2024, 2, 1)),
    )
    transactions = (
        make_transaction(alice, card_a, "700", id="t1"),
        make_transaction(bob, card_b, "300", id="t2"),
    )
    collections = Collections(
        users=(admin, alice, bob),
        cards=(card_a, card_b),
        orders=orders,
        transactions=transactions,
    )
    return admin, alice, bob, collections


def bearer(user) -> dict:
    from foneflow.auth import create_access_token
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
