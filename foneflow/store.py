"""Collection snapshots and change notification over the SQL store.

The statistics engine never talks to the database. Callers take a
``Collections`` snapshot (immutable records) and hand it to the engine; writers
publish changes through ``notify`` so that subscribers can recompute.
"""
import logging
from typing import Callable, List, NamedTuple, Tuple

from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)

COLLECTIONS = ("users", "cards", "orders", "transactions")


class Collections(NamedTuple):
    users: Tuple[schemas.UserRead, ...] = ()
    cards: Tuple[schemas.CardRead, ...] = ()
    orders: Tuple[schemas.OrderRead, ...] = ()
    transactions: Tuple[schemas.TransactionRead, ...] = ()


class Change(NamedTuple):
    collection: str
    action: str  # 'put' or 'delete'
    id: str


Listener = Callable[[Change], None]

_listeners: List[Listener] = []


def subscribe(listener: Listener) -> Callable[[], None]:
    """Register a change listener; returns a callable that unsubscribes it."""
    _listeners.append(listener)

    def unsubscribe():
        if listener in _listeners:
            _listeners.remove(listener)

    return unsubscribe


def clear_listeners() -> None:
    """Drop every registered listener."""
    _listeners.clear()


def notify(collection: str, action: str, record_id: str) -> None:
    change = Change(collection, action, record_id)
    for listener in list(_listeners):
        try:
            listener(change)
        except Exception:
            # A broken subscriber must not fail the write that triggered it
            logger.exception("change listener failed for %s", change)


def snapshot(db: Session) -> Collections:
    return Collections(
        users=tuple(schemas.UserRead.model_validate(u) for u in db.query(models.User).order_by(models.User.name, models.User.id)),
        cards=tuple(schemas.CardRead.model_validate(c) for c in db.query(models.CreditCard).order_by(models.CreditCard.name, models.CreditCard.id)),
        orders=tuple(schemas.OrderRead.model_validate(o) for o in db.query(models.Order).order_by(models.Order.order_date.desc(), models.Order.id)),
        transactions=tuple(
            schemas.TransactionRead.model_validate(t)
            for t in db.query(models.Transaction).order_by(models.Transaction.date.desc(), models.Transaction.id)
        ),
    )
