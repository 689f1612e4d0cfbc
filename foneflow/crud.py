import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .auth import hash_password, verify_password
from .errors import LastAdminDeletion, NotFound, ReferentialIntegrityError
from .store import notify
from .utils import round_amount, sanitize_input

logger = logging.getLogger(__name__)


def _commit(db: Session, obj=None):
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ReferentialIntegrityError("integrity error") from e
    if obj is not None:
        db.refresh(obj)
    return obj


def _get_or_404(db: Session, model, record_id: str, label: str):
    obj = db.get(model, record_id)
    if not obj:
        raise NotFound(f"{label} not found")
    return obj


def _clean(value: Optional[str], label: str, min_length: int = 0) -> str:
    """Sanitize a free-text field and re-check its length on what is left."""
    text = sanitize_input(value)
    if len(text) < min_length:
        raise ValueError(f"{label} must be at least {min_length} characters")
    return text


# -------------------- Users --------------------

def count_admins(db: Session) -> int:
    return db.query(models.User).filter(models.User.role == models.Role.admin.value).count()


def _check_email_free(db: Session, email: str, user_id: Optional[str] = None):
    q = db.query(models.User).filter(models.User.email == email)
    if user_id is not None:
        q = q.filter(models.User.id != user_id)
    if q.first():
        raise ValueError("email already registered")


def create_user(db: Session, user: schemas.UserCreate) -> models.User:
    email = user.email.strip().lower()
    _check_email_free(db, email)
    role = user.role
    # The first account in an empty store must be able to administer it
    if db.query(models.User).count() == 0 and role != models.Role.admin:
        logger.info("first user %s promoted to admin", email)
        role = models.Role.admin

    db_user = models.User(
        name=_clean(user.name, "name", 1),
        email=email,
        role=role.value,
        password_hash=hash_password(user.password) if user.password else None,
    )
    db.add(db_user)
    _commit(db, db_user)
    logger.info("created user %s (%s)", db_user.id, db_user.role)
    notify("users", "put", db_user.id)
    return db_user


def get_user(db: Session, user_id: str) -> Optional[models.User]:
    return db.get(models.User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email.strip().lower()).first()


def list_users(db: Session) -> List[models.User]:
    return db.query(models.User).order_by(models.User.name, models.User.id).all()


def update_user(db: Session, user_id: str, data: schemas.UserUpdate) -> models.User:
    user = _get_or_404(db, models.User, user_id, "user")
    email = data.email.strip().lower()
    _check_email_free(db, email, user_id)
    if user.role == models.Role.admin.value and data.role != models.Role.admin and count_admins(db) <= 1:
        logger.warning("refused to demote last admin %s", user_id)
        raise LastAdminDeletion("cannot demote the last admin")

    user.name = _clean(data.name, "name", 1)
    user.email = email
    user.role = data.role.value
    if data.password:
        user.password_hash = hash_password(data.password)
    db.add(user)
    _commit(db, user)
    logger.info("updated user %s", user_id)
    notify("users", "put", user_id)
    return user


def set_password(db: Session, user_id: str, current_password: str, new_password: str) -> models.User:
    user = _get_or_404(db, models.User, user_id, "user")
    if user.password_hash and not verify_password(current_password, user.password_hash):
        raise ValueError("incorrect current password")
    user.password_hash = hash_password(new_password)
    db.add(user)
    _commit(db, user)
    logger.info("password changed for user %s", user_id)
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[models.User]:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def delete_user(db: Session, user_id: str) -> bool:
    user = db.get(models.User, user_id)
    if not user:
        return False
    if user.role == models.Role.admin.value and count_admins(db) <= 1:
        logger.warning("refused to delete last admin %s", user_id)
        raise LastAdminDeletion("cannot delete the last admin")
    if user.cards or user.orders or user.transactions:
        raise ReferentialIntegrityError("user still has cards, orders or transactions")
    db.delete(user)
    _commit(db)
    logger.info("deleted user %s", user_id)
    notify("users", "delete", user_id)
    return True


# -------------------- Cards --------------------

def create_card(db: Session, card: schemas.CardCreate) -> models.CreditCard:
    if not card.user_id or not db.get(models.User, card.user_id):
        raise ReferentialIntegrityError("foreign key violation: user does not exist")
    db_card = models.CreditCard(name=_clean(card.name, "card name", 2), card_number=card.card_number, user_id=card.user_id)
    db.add(db_card)
    _commit(db, db_card)
    logger.info("created card %s for user %s", db_card.id, db_card.user_id)
    notify("cards", "put", db_card.id)
    return db_card


def get_card(db: Session, card_id: str) -> Optional[models.CreditCard]:
    return db.get(models.CreditCard, card_id)


def list_cards(db: Session) -> List[models.CreditCard]:
    return db.query(models.CreditCard).order_by(models.CreditCard.name, models.CreditCard.id).all()


def _card_in_use(db: Session, card_id: str) -> bool:
    if db.query(models.Order).filter(models.Order.card_id == card_id).first():
        return True
    return db.query(models.Transaction).filter(models.Transaction.card_id == card_id).first() is not None


def update_card(db: Session, card_id: str, data: schemas.CardCreate) -> models.CreditCard:
    card = _get_or_404(db, models.CreditCard, card_id, "card")
    if not data.user_id or not db.get(models.User, data.user_id):
        raise ReferentialIntegrityError("foreign key violation: user does not exist")
    if data.user_id != card.user_id and _card_in_use(db, card_id):
        raise ReferentialIntegrityError("card has orders or transactions and cannot change owner")
    card.name = _clean(data.name, "card name", 2)
    card.card_number = data.card_number
    card.user_id = data.user_id
    db.add(card)
    _commit(db, card)
    logger.info("updated card %s", card_id)
    notify("cards", "put", card_id)
    return card


def delete_card(db: Session, card_id: str) -> bool:
    card = db.get(models.CreditCard, card_id)
    if not card:
        return False
    if _card_in_use(db, card_id):
        raise ReferentialIntegrityError("card still has orders or transactions")
    db.delete(card)
    _commit(db)
    logger.info("deleted card %s", card_id)
    notify("cards", "delete", card_id)
    return True


# -------------------- Orders --------------------

def _check_order_refs(db: Session, user_id: Optional[str], card_id: str):
    if not user_id or not db.get(models.User, user_id):
        raise ReferentialIntegrityError("foreign key violation: user does not exist")
    card = db.get(models.CreditCard, card_id)
    if not card:
        raise ReferentialIntegrityError("foreign key violation: card does not exist")
    if card.user_id != user_id:
        raise ReferentialIntegrityError("card does not belong to the order's user")


def _apply_order(db_order: models.Order, order: schemas.OrderCreate):
    # Clean first so a rejected value leaves the row untouched
    model = _clean(order.model, "model", 2)
    variant = _clean(order.variant, "variant", 2)
    dealer = _clean(order.dealer, "dealer") or None
    db_order.model = model
    db_order.variant = variant
    db_order.order_date = order.order_date
    db_order.ordered_price = round_amount(order.ordered_price)
    db_order.cashback = round_amount(order.cashback)
    db_order.user_id = order.user_id
    db_order.card_id = order.card_id
    db_order.delivery_date = order.delivery_date
    db_order.selling_price = round_amount(order.selling_price) if order.selling_price is not None else None
    db_order.dealer = dealer


def create_order(db: Session, order: schemas.OrderCreate) -> models.Order:
    _check_order_refs(db, order.user_id, order.card_id)
    db_order = models.Order()
    _apply_order(db_order, order)
    db.add(db_order)
    _commit(db, db_order)
    logger.info("created order %s (%s %s)", db_order.id, db_order.model, db_order.variant)
    notify("orders", "put", db_order.id)
    return db_order


def get_order(db: Session, order_id: str) -> Optional[models.Order]:
    return db.get(models.Order, order_id)


def list_orders(db: Session) -> List[models.Order]:
    return db.query(models.Order).order_by(models.Order.order_date.desc(), models.Order.id).all()


def update_order(db: Session, order_id: str, order: schemas.OrderCreate) -> models.Order:
    db_order = _get_or_404(db, models.Order, order_id, "order")
    _check_order_refs(db, order.user_id, order.card_id)
    _apply_order(db_order, order)
    db.add(db_order)
    _commit(db, db_order)
    logger.info("updated order %s", order_id)
    notify("orders", "put", order_id)
    return db_order


def delete_order(db: Session, order_id: str) -> bool:
    order = db.get(models.Order, order_id)
    if not order:
        return False
    db.delete(order)
    _commit(db)
    logger.info("deleted order %s", order_id)
    notify("orders", "delete", order_id)
    return True


# -------------------- Transactions --------------------

def _check_transaction_refs(db: Session, user_id: Optional[str], card_id: str):
    if not user_id or not db.get(models.User, user_id):
        raise ReferentialIntegrityError("foreign key violation: user does not exist")
    card = db.get(models.CreditCard, card_id)
    if not card:
        raise ReferentialIntegrityError("foreign key violation: card does not exist")
    if card.user_id != user_id:
        raise ReferentialIntegrityError("card does not belong to the transaction's user")


def _apply_transaction(db_tx: models.Transaction, tx: schemas.TransactionCreate):
    amount = round_amount(tx.amount)
    if amount <= 0:
        raise ValueError("amount must be positive")
    dealer = _clean(tx.dealer, "dealer", 2)
    description = _clean(tx.description, "description") or None
    db_tx.date = tx.date
    db_tx.amount = amount
    db_tx.dealer = dealer
    db_tx.description = description
    db_tx.user_id = tx.user_id
    db_tx.card_id = tx.card_id
    db_tx.payment_mode = tx.payment_mode.value
    db_tx.online_payment_type = tx.online_payment_type.value if tx.online_payment_type else None


def create_transaction(db: Session, tx: schemas.TransactionCreate) -> models.Transaction:
    _check_transaction_refs(db, tx.user_id, tx.card_id)
    db_tx = models.Transaction()
    _apply_transaction(db_tx, tx)
    db.add(db_tx)
    _commit(db, db_tx)
    logger.info("recorded transaction %s of %s from %s", db_tx.id, db_tx.amount, db_tx.dealer)
    notify("transactions", "put", db_tx.id)
    return db_tx


def get_transaction(db: Session, transaction_id: str) -> Optional[models.Transaction]:
    return db.get(models.Transaction, transaction_id)


def list_transactions(db: Session) -> List[models.Transaction]:
    return db.query(models.Transaction).order_by(models.Transaction.date.desc(), models.Transaction.id).all()


def update_transaction(db: Session, transaction_id: str, tx: schemas.TransactionCreate) -> models.Transaction:
    db_tx = _get_or_404(db, models.Transaction, transaction_id, "transaction")
    _check_transaction_refs(db, tx.user_id, tx.card_id)
    _apply_transaction(db_tx, tx)
    db.add(db_tx)
    _commit(db, db_tx)
    logger.info("updated transaction %s", transaction_id)
    notify("transactions", "put", transaction_id)
    return db_tx


def delete_transaction(db: Session, transaction_id: str) -> bool:
    tx = db.get(models.Transaction, transaction_id)
    if not tx:
        return False
    db.delete(tx)
    _commit(db)
    logger.info("deleted transaction %s", transaction_id)
    notify("transactions", "delete", transaction_id)
    return True


def reset_data(db: Session) -> dict:
    """Remove every order, transaction and card. Users are kept."""
    counts = {
        "orders": db.query(models.Order).delete(synchronize_session=False),
        "transactions": db.query(models.Transaction).delete(synchronize_session=False),
        "cards": db.query(models.CreditCard).delete(synchronize_session=False),
    }
    _commit(db)
    db.expire_all()
    logger.warning("application data reset: %s", counts)
    for name in counts:
        notify(name, "delete", "*")
    return counts
