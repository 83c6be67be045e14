from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .utils import get_logger, round_amount, sanitize_input

logger = get_logger(__name__)


# -------------------- Users --------------------

def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.get(models.User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == normalize_email(email)).first()


def create_user(
    db: Session,
    email: str,
    password_hash: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    role: models.UserRole = models.UserRole.USER,
) -> models.User:
    """Insert a user row. Raises IntegrityError if the email is already taken."""
    db_user = models.User(
        email=normalize_email(email),
        password_hash=password_hash,
        first_name=sanitize_input(first_name) or None,
        last_name=sanitize_input(last_name) or None,
        role=role.value,
        is_active=True,
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise
    db.refresh(db_user)
    return db_user


# -------------------- Products --------------------

def create_product(db: Session, product: schemas.ProductCreate) -> models.Product:
    db_product = models.Product(
        name=sanitize_input(product.name),
        price=round_amount(product.price),
        description=sanitize_input(product.description) or None,
    )
    db.add(db_product)
    db.commit()
    db.refresh(db_product)
    return db_product


def list_products(db: Session) -> List[models.Product]:
    return db.query(models.Product).order_by(models.Product.id).all()


def get_product(db: Session, product_id: int) -> Optional[models.Product]:
    return db.get(models.Product, product_id)


# -------------------- Orders --------------------

def get_order(db: Session, order_id: int) -> Optional[models.Order]:
    return db.get(models.Order, order_id)


def get_order_by_reference(db: Session, reference: str) -> Optional[models.Order]:
    return db.query(models.Order).filter(models.Order.reference == reference).first()


def list_orders(db: Session) -> List[models.Order]:
    return db.query(models.Order).order_by(models.Order.created_at.desc(), models.Order.id.desc()).all()


def list_orders_for_user(db: Session, user: models.User) -> List[models.Order]:
    return (
        db.query(models.Order)
        .filter(models.Order.user_id == user.id)
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .all()
    )


def create_paid_order(
    db: Session,
    reference: str,
    amount: Decimal,
    email: str,
    product_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> Tuple[models.Order, bool]:
    """Record a paid order once per gateway reference.

    Returns ``(order, created)``. When the reference already exists the stored
    order is returned untouched with ``created=False``. Two writers racing on
    the same reference are settled by the unique constraint: the loser rolls
    back and gets the winner's row.
    """
    existing = get_order_by_reference(db, reference)
    if existing:
        return existing, False

    amount = round_amount(amount)
    if amount < 0:
        raise ValueError("amount must be non-negative")

    db_order = models.Order(
        reference=reference,
        amount=amount,
        email=email,
        status=models.OrderStatus.PAID.value,
        product_id=product_id,
        user_id=user_id,
    )
    db.add(db_order)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_order_by_reference(db, reference)
        if existing is None:
            raise
        logger.info("Order %s was inserted concurrently; keeping the first write", reference)
        return existing, False
    db.refresh(db_order)
    return db_order, True


def update_order_status(db: Session, order_id: int, status: models.OrderStatus) -> Optional[models.Order]:
    order = get_order(db, order_id)
    if not order:
        return None
    order.status = status.value
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def order_stats(db: Session) -> schemas.OrderStats:
    counts = dict(
        db.query(models.Order.status, func.count(models.Order.id)).group_by(models.Order.status).all()
    )
    revenue = (
        db.query(func.coalesce(func.sum(models.Order.amount), 0))
        .filter(models.Order.status == models.OrderStatus.PAID.value)
        .scalar()
    )
    return schemas.OrderStats(
        total_orders=sum(counts.values()),
        total_revenue=round_amount(Decimal(str(revenue))),
        paid_orders=counts.get(models.OrderStatus.PAID.value, 0),
        pending_orders=counts.get(models.OrderStatus.PENDING.value, 0),
        failed_orders=counts.get(models.OrderStatus.FAILED.value, 0),
        refunded_orders=counts.get(models.OrderStatus.REFUNDED.value, 0),
    )
