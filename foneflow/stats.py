"""Dashboard statistics and role-based data scoping.

Everything here is a pure function of immutable snapshots. The pipeline always
runs in the same order: ``scope`` -> ``filter_orders`` -> ``compute_stats``,
so a regular user can never reach another user's rows through a filter or an
aggregate. Malformed data (dangling references) is tolerated and rendered as
``UNKNOWN`` instead of raising.
"""
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import Unauthenticated
from .models import Role
from .schemas import (
    ALL,
    CardRead,
    Dashboard,
    FilterCriteria,
    OrderRead,
    OrderRow,
    Stats,
    TransactionRead,
    UserRead,
)
from .store import Collections
from .utils import round_amount

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
ZERO = Decimal("0")


# -------------------- Access scope --------------------

def scope(acting_user: Optional[UserRead], collections: Collections) -> Collections:
    """Return the part of ``collections`` that ``acting_user`` may see."""
    if acting_user is None:
        raise Unauthenticated("login required")

    # Role() raises ValueError for anything outside the enum
    if Role(acting_user.role) is Role.admin:
        return collections
    uid = acting_user.id
    return Collections(
        users=(acting_user,),
        cards=tuple(c for c in collections.cards if c.user_id == uid),
        orders=tuple(o for o in collections.orders if o.user_id == uid),
        transactions=tuple(t for t in collections.transactions if t.user_id == uid),
    )


# -------------------- Per-order figures --------------------

def is_sold(order: OrderRead) -> bool:
    return order.selling_price is not None


def net_cost(order: OrderRead) -> Decimal:
    return order.ordered_price - (order.cashback or ZERO)


def profit(order: OrderRead) -> Optional[Decimal]:
    if not is_sold(order):
        return None
    return order.selling_price - net_cost(order)


def profit_percentage(order: OrderRead) -> Optional[Decimal]:
    p = profit(order)
    cost = net_cost(order)
    if p is None or cost <= 0:
        return None
    return round_amount(p / cost * 100)


def status(order: OrderRead) -> str:
    return "Sold" if is_sold(order) else "In Stock"


# -------------------- Filtering --------------------

def cards_for_filter(cards: Iterable[CardRead], user_id: str = ALL) -> Tuple[CardRead, ...]:
    """Cards that are valid choices for the card filter under ``user_id``."""
    if user_id == ALL:
        return tuple(cards)
    return tuple(c for c in cards if c.user_id == user_id)


def resolve_criteria(criteria: FilterCriteria, cards: Iterable[CardRead]) -> FilterCriteria:
    """Reset a card filter that does not belong to the selected user filter."""
    if criteria.user_id == ALL or criteria.card_id == ALL:
        return criteria
    if any(c.id == criteria.card_id for c in cards_for_filter(cards, criteria.user_id)):
        return criteria
    logger.warning(
        "card filter %s does not belong to user %s; resetting to %r",
        criteria.card_id, criteria.user_id, ALL,
    )
    return criteria.model_copy(update={"card_id": ALL})


def _matches(order: OrderRead, criteria: FilterCriteria) -> bool:
    if criteria.date_from is not None and order.order_date < criteria.date_from:
        return False
    if criteria.date_to is not None and order.order_date > criteria.date_to:
        return False
    if criteria.user_id != ALL and order.user_id != criteria.user_id:
        return False
    if criteria.card_id != ALL and order.card_id != criteria.card_id:
        return False
    if criteria.dealer != ALL and order.dealer != criteria.dealer:
        return False
    return True


def filter_orders(
    orders: Sequence[OrderRead],
    criteria: Optional[FilterCriteria] = None,
    cards: Optional[Iterable[CardRead]] = None,
) -> Tuple[OrderRead, ...]:
    """Orders passing every criterion, in their original relative order.

    Date bounds are inclusive. When ``cards`` (the scoped card collection) is
    given, an inconsistent card/user filter pair is resolved first.
    """
    criteria = criteria or FilterCriteria()
    if cards is not None:
        criteria = resolve_criteria(criteria, cards)
    return tuple(o for o in orders if _matches(o, criteria))


def unique_dealers(orders: Iterable[OrderRead]) -> List[str]:
    seen = dict.fromkeys(o.dealer for o in orders if o.dealer)
    return [ALL, *seen]


# -------------------- Aggregation --------------------

def compute_stats(orders: Sequence[OrderRead], transactions: Sequence[TransactionRead]) -> Stats:
    sold = [o for o in orders if is_sold(o)]
    total_invested = sum((o.ordered_price for o in orders), ZERO)
    total_received = sum((t.amount for t in transactions), ZERO)
    total_profit = sum((profit(o) for o in sold), ZERO)
    return Stats(
        total_phones=len(orders),
        sold_phones=len(sold),
        total_invested=total_invested,
        total_invested_after_cashback=sum((net_cost(o) for o in orders), ZERO),
        total_received=total_received,
        total_pending=total_invested - total_received,
        total_profit=total_profit,
        avg_profit=round_amount(total_profit / len(sold)) if sold else ZERO,
    )


def cashback_total(orders: Iterable[OrderRead], user_id: str = ALL) -> Decimal:
    """Cashback earned, filtered only by its own user selector."""
    return sum((o.cashback or ZERO for o in orders if user_id == ALL or o.user_id == user_id), ZERO)


def credit_card_bill(card_id: str, orders: Iterable[OrderRead], transactions: Iterable[TransactionRead]) -> Decimal:
    """Outstanding balance of one card: everything charged minus everything paid back."""
    spent = sum((o.ordered_price for o in orders if o.card_id == card_id), ZERO)
    paid = sum((t.amount for t in transactions if t.card_id == card_id), ZERO)
    return spent - paid


def credit_card_bills(
    cards: Iterable[CardRead],
    orders: Iterable[OrderRead],
    transactions: Iterable[TransactionRead],
) -> Dict[str, Decimal]:
    bills = {c.id: ZERO for c in cards}
    for o in orders:
        if o.card_id in bills:
            bills[o.card_id] += o.ordered_price
    for t in transactions:
        # Payments against cards outside the collection are ignored
        if t.card_id in bills:
            bills[t.card_id] -= t.amount
    return bills


# -------------------- Display rows --------------------

def lookup_name(names: Mapping[str, str], record_id: Optional[str]) -> str:
    name = names.get(record_id) if record_id else None
    if name is None:
        logger.debug("dangling reference %r", record_id)
        return UNKNOWN
    return name


def order_rows(orders: Iterable[OrderRead], users: Iterable[UserRead], cards: Iterable[CardRead]) -> List[OrderRow]:
    user_names = {u.id: u.name for u in users}
    card_names = {c.id: c.name for c in cards}
    return [
        OrderRow(
            **o.model_dump(),
            user_name=lookup_name(user_names, o.user_id),
            card_name=lookup_name(card_names, o.card_id),
            net_cost=net_cost(o),
            profit=profit(o),
            profit_percentage=profit_percentage(o),
            status=status(o),
        )
        for o in orders
    ]


def build_dashboard(
    acting_user: Optional[UserRead],
    collections: Collections,
    criteria: Optional[FilterCriteria] = None,
    cashback_user_id: str = ALL,
) -> Dashboard:
    """Run the full scope -> filter -> aggregate pipeline for one viewer."""
    visible = scope(acting_user, collections)
    effective = resolve_criteria(criteria or FilterCriteria(), visible.cards)
    filtered = filter_orders(visible.orders, effective)
    return Dashboard(
        criteria=effective,
        stats=compute_stats(filtered, visible.transactions),
        card_bills=credit_card_bills(visible.cards, visible.orders, visible.transactions),
        cashback_total=cashback_total(visible.orders, cashback_user_id),
        dealers=unique_dealers(visible.orders),
        card_options=list(cards_for_filter(visible.cards, effective.user_id)),
        orders=order_rows(filtered, visible.users, visible.cards),
    )
