import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import crud, schemas, stats, store
from .auth import create_access_token, user_id_from_token
from .config import get_settings
from .db import Base, SessionLocal, engine, get_db
from .errors import Forbidden, LastAdminDeletion, NotFound, Unauthenticated
from .models import Role

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def seed_admin(db: Session):
    """Create the configured default admin when the store has no users yet."""
    settings = get_settings()
    if not (settings.admin_email and settings.admin_password):
        return None
    if crud.list_users(db):
        return None
    logger.info("seeding default admin %s", settings.admin_email)
    return crud.create_user(
        db,
        schemas.UserCreate(
            name=settings.admin_name,
            email=settings.admin_email,
            role=Role.admin,
            password=settings.admin_password,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables if not existing. In production, use Alembic.
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_admin(db)
    finally:
        db.close()
    yield


app = FastAPI(title="FoneFlow", lifespan=lifespan)


@app.exception_handler(Unauthenticated)
async def unauthenticated_handler(request: Request, exc: Unauthenticated):
    return JSONResponse(status_code=401, content={"detail": str(exc) or "login required"})


@app.exception_handler(Forbidden)
async def forbidden_handler(request: Request, exc: Forbidden):
    return JSONResponse(status_code=403, content={"detail": str(exc) or "forbidden"})


def error_status(e: ValueError) -> int:
    if isinstance(e, NotFound):
        return 404
    if isinstance(e, LastAdminDeletion):
        return 409
    return 400


# -------------------- Acting user --------------------

def get_acting_user(
    request: Request,
    db: Session = Depends(get_db),
    x_acting_user_id: Optional[str] = Header(default=None),
) -> Optional[schemas.UserRead]:
    """Resolve the caller from a bearer token.

    The unauthenticated X-Acting-User-Id header is only honoured when
    ALLOW_ACTING_USER_HEADER is set (local tooling); it is ignored otherwise.
    """
    acting_id = None
    auth = request.headers.get("authorization")
    if auth and auth.lower().startswith("bearer "):
        token = auth.split(None, 1)[1]
        acting_id = user_id_from_token(token)
        if acting_id is None:
            raise HTTPException(status_code=401, detail="invalid token")
    elif x_acting_user_id and get_settings().allow_acting_header:
        acting_id = x_acting_user_id

    if acting_id is None:
        return None
    user = crud.get_user(db, acting_id)
    if not user:
        raise HTTPException(status_code=401, detail="acting user not found")
    return schemas.UserRead.model_validate(user)


def require_user(acting: Optional[schemas.UserRead] = Depends(get_acting_user)) -> schemas.UserRead:
    if acting is None:
        raise Unauthenticated("login required")
    return acting


def require_admin(acting: schemas.UserRead = Depends(require_user)) -> schemas.UserRead:
    if acting.role != Role.admin:
        raise Forbidden("admin required")
    return acting


def check_owner(acting: schemas.UserRead, user_id: Optional[str]):
    """Regular users may only touch records that belong to them."""
    if acting.role != Role.admin and user_id != acting.id:
        raise Forbidden("forbidden")


def visible(db: Session, acting: schemas.UserRead) -> store.Collections:
    return stats.scope(acting, store.snapshot(db))


@app.get("/health")
async def health():
    return {"status": "ok"}


# -------------------- Auth --------------------

@app.post("/auth/login", response_model=schemas.Token)
async def auth_login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    user = crud.authenticate(db, payload.email, payload.password)
    if not user:
        logger.info("failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="invalid credentials")
    return schemas.Token(access_token=create_access_token(user.id, user.role))


@app.put("/auth/password")
async def change_password(payload: schemas.PasswordChange, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    try:
        crud.set_password(db, acting.id, payload.current_password, payload.new_password)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))
    return {"updated": acting.id}


@app.get("/me", response_model=schemas.UserRead)
async def me(acting: schemas.UserRead = Depends(require_user)):
    return acting


# -------------------- Users --------------------

@app.post("/users", response_model=schemas.UserRead, status_code=201)
async def create_user(user: schemas.UserCreate, db: Session = Depends(get_db), acting: Optional[schemas.UserRead] = Depends(get_acting_user)):
    # An empty store can be bootstrapped without credentials; the first user becomes admin
    if crud.list_users(db):
        if acting is None:
            raise Unauthenticated("login required")
        if acting.role != Role.admin:
            raise Forbidden("admin required")
    try:
        return crud.create_user(db, user)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@app.get("/users", response_model=List[schemas.UserRead])
async def get_users(db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    return visible(db, acting).users


@app.get("/users/{user_id}", response_model=schemas.UserRead)
async def get_user(user_id: str, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    check_owner(acting, user_id)
    user = crud.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="user not found")
    return user


@app.put("/users/{user_id}", response_model=schemas.UserRead)
async def update_user(user_id: str, payload: schemas.UserUpdate, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    check_owner(acting, user_id)
    if acting.role != Role.admin and payload.role != acting.role:
        raise Forbidden("forbidden: admin required to change role")
    # Own password changes go through /auth/password, which checks the current one
    if payload.password and (acting.role != Role.admin or user_id == acting.id):
        raise Forbidden("forbidden: use /auth/password to change your password")
    try:
        return crud.update_user(db, user_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@app.delete("/users/{user_id}")
async def delete_user(user_id: str, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_admin)):
    try:
        ok = crud.delete_user(db, user_id)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))
    if not ok:
        raise HTTPException(status_code=404, detail="user not found")
    return {"deleted": user_id}


# -------------------- Cards --------------------

@app.get("/cards", response_model=List[schemas.CardRead])
async def get_cards(db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    return visible(db, acting).cards


@app.post("/cards", response_model=schemas.CardRead, status_code=201)
async def create_card(card: schemas.CardCreate, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    card = card.model_copy(update={"user_id": card.user_id or acting.id})
    check_owner(acting, card.user_id)
    try:
        return crud.create_card(db, card)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@app.put("/cards/{card_id}", response_model=schemas.CardRead)
async def update_card(card_id: str, card: schemas.CardCreate, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    existing = crud.get_card(db, card_id)
    if not existing:
        raise HTTPException(status_code=404, detail="card not found")
    check_owner(acting, existing.user_id)
    card = card.model_copy(update={"user_id": card.user_id or existing.user_id})
    check_owner(acting, card.user_id)
    try:
        return crud.update_card(db, card_id, card)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@app.delete("/cards/{card_id}")
async def delete_card(card_id: str, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    existing = crud.get_card(db, card_id)
    if not existing:
        raise HTTPException(status_code=404, detail="card not found")
    check_owner(acting, existing.user_id)
    try:
        crud.delete_card(db, card_id)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))
    return {"deleted": card_id}


# -------------------- Orders --------------------

@app.get("/orders", response_model=List[schemas.OrderRead])
async def get_orders(db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    return visible(db, acting).orders


@app.post("/orders", response_model=schemas.OrderRead, status_code=201)
async def create_order(order: schemas.OrderCreate, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    order = order.model_copy(update={"user_id": order.user_id or acting.id})
    check_owner(acting, order.user_id)
    try:
        return crud.create_order(db, order)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@app.put("/orders/{order_id}", response_model=schemas.OrderRead)
async def update_order(order_id: str, order: schemas.OrderCreate, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    existing = crud.get_order(db, order_id)
    if not existing:
        raise HTTPException(status_code=404, detail="order not found")
    # Authorization: acting user must be the order owner or an admin
    check_owner(acting, existing.user_id)
    order = order.model_copy(update={"user_id": order.user_id or existing.user_id})
    check_owner(acting, order.user_id)
    try:
        return crud.update_order(db, order_id, order)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@app.delete("/orders/{order_id}")
async def delete_order(order_id: str, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    existing = crud.get_order(db, order_id)
    if not existing:
        raise HTTPException(status_code=404, detail="order not found")
    check_owner(acting, existing.user_id)
    crud.delete_order(db, order_id)
    return {"deleted": order_id}


# -------------------- Transactions --------------------

@app.get("/transactions", response_model=List[schemas.TransactionRead])
async def get_transactions(db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    return visible(db, acting).transactions


@app.post("/transactions", response_model=schemas.TransactionRead, status_code=201)
async def create_transaction(tx: schemas.TransactionCreate, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    tx = tx.model_copy(update={"user_id": tx.user_id or acting.id})
    check_owner(acting, tx.user_id)
    try:
        return crud.create_transaction(db, tx)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@app.put("/transactions/{transaction_id}", response_model=schemas.TransactionRead)
async def update_transaction(transaction_id: str, tx: schemas.TransactionCreate, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    existing = crud.get_transaction(db, transaction_id)
    if not existing:
        raise HTTPException(status_code=404, detail="transaction not found")
    check_owner(acting, existing.user_id)
    tx = tx.model_copy(update={"user_id": tx.user_id or existing.user_id})
    check_owner(acting, tx.user_id)
    try:
        return crud.update_transaction(db, transaction_id, tx)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@app.delete("/transactions/{transaction_id}")
async def delete_transaction(transaction_id: str, db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_user)):
    existing = crud.get_transaction(db, transaction_id)
    if not existing:
        raise HTTPException(status_code=404, detail="transaction not found")
    check_owner(acting, existing.user_id)
    crud.delete_transaction(db, transaction_id)
    return {"deleted": transaction_id}


# -------------------- Dashboard --------------------

@app.get("/dashboard", response_model=schemas.Dashboard)
async def dashboard(
    date_from: Optional[str] = Query(default=None),
    date_to: Optional[str] = Query(default=None),
    user_id: str = Query(default=schemas.ALL),
    card_id: str = Query(default=schemas.ALL),
    dealer: str = Query(default=schemas.ALL),
    cashback_user_id: str = Query(default=schemas.ALL),
    db: Session = Depends(get_db),
    acting: schemas.UserRead = Depends(require_user),
):
    try:
        criteria = schemas.FilterCriteria(date_from=date_from, date_to=date_to, user_id=user_id, card_id=card_id, dealer=dealer)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return stats.build_dashboard(acting, store.snapshot(db), criteria, cashback_user_id)


@app.post("/admin/reset")
async def reset_data(db: Session = Depends(get_db), acting: schemas.UserRead = Depends(require_admin)):
    logger.warning("reset requested by %s", acting.id)
    return {"deleted": crud.reset_data(db)}
