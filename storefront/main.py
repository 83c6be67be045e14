import time
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from . import auth, crud, models, schemas, webhooks
from .auth import get_current_user, require_admin
from .config import Settings, get_settings
from .db import Base, engine, get_db
from .errors import ConfigurationError, NotFoundError, BadRequestError, StorefrontError, install_error_handlers
from .notifications import EmailNotifier
from .paystack import PaystackClient
from .utils import get_logger

logger = get_logger(__name__)

# Create tables if not existing. In production, use Alembic.
Base.metadata.create_all(bind=engine)

STARTED_AT = time.monotonic()

app = FastAPI(title="Storefront API", description="Paystack checkout for a small storefront")
install_error_handlers(app)


def get_paystack(settings: Settings = Depends(get_settings)) -> PaystackClient:
    return PaystackClient(settings)


def get_notifier(settings: Settings = Depends(get_settings)) -> EmailNotifier:
    return EmailNotifier(settings)


def with_query(url: str, **params) -> str:
    """Append query parameters to ``url``, keeping any it already carries."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True) + list(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


@app.get("/health", response_model=schemas.HealthStatus)
async def health(settings: Settings = Depends(get_settings)):
    return schemas.HealthStatus(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        uptime=round(time.monotonic() - STARTED_AT, 3),
        environment=settings.environment,
    )


# -------------------- Auth --------------------
@app.post("/auth/register", response_model=schemas.AuthResponse, status_code=201)
async def register(payload: schemas.RegisterRequest, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    user, token = auth.register_user(db, payload, settings)
    return schemas.AuthResponse(user=schemas.UserRead.model_validate(user), access_token=token, message="Registration successful")


@app.post("/auth/login", response_model=schemas.AuthResponse)
async def login(payload: schemas.LoginRequest, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    user, token = auth.authenticate_user(db, payload, settings)
    return schemas.AuthResponse(user=schemas.UserRead.model_validate(user), access_token=token, message="Login successful")


@app.get("/auth/profile", response_model=schemas.UserRead)
async def profile(user: models.User = Depends(get_current_user)):
    return user


# -------------------- Catalog --------------------
@app.get("/products", response_model=List[schemas.ProductRead])
async def get_products(db: Session = Depends(get_db)):
    return crud.list_products(db)


@app.post("/products", response_model=schemas.ProductRead, status_code=201)
async def create_product(payload: schemas.ProductCreate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    product = crud.create_product(db, payload)
    logger.info("Product %s created by admin %s", product.id, admin.id)
    return product


@app.get("/products/{product_id}", response_model=schemas.ProductRead)
async def get_product(product_id: int, db: Session = Depends(get_db)):
    product = crud.get_product(db, product_id)
    if not product:
        raise NotFoundError("product not found")
    return product


# -------------------- Checkout --------------------
@app.post("/checkout/pay", response_model=schemas.CheckoutResponse, status_code=201)
def checkout_pay(
    payload: schemas.CheckoutRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack),
):
    if not crud.get_product(db, payload.product_id):
        raise NotFoundError("product not found")
    session = paystack.initialize_transaction(
        email=payload.email,
        amount=payload.amount,
        product_id=payload.product_id,
        user_id=user.id,
        user_email=user.email,
        reference=payload.reference,
    )
    logger.info("Payment session %s opened for user %s", session["reference"], user.id)
    return schemas.CheckoutResponse(**session)


@app.get("/checkout/success")
def checkout_success(
    reference: Optional[str] = Query(default=None),
    trxref: Optional[str] = Query(default=None),
    settings: Settings = Depends(get_settings),
    paystack: PaystackClient = Depends(get_paystack),
):
    """Landing point of the gateway's callback_url; forwards the shopper to the frontend."""
    if not settings.frontend_success_url:
        raise ConfigurationError("FRONTEND_SUCCESS_URL is not configured")
    ref = reference or trxref
    if not ref:
        raise BadRequestError("reference is required")
    try:
        status = paystack.verify_transaction(ref).get("status") or "unknown"
    except StorefrontError as e:
        logger.warning("Could not verify transaction %s: %s", ref, e.message)
        status = "unknown"
    url = with_query(settings.frontend_success_url, reference=ref, status=status)
    return RedirectResponse(url=url, status_code=303)


@app.post("/checkout/webhook/paystack", response_model=schemas.WebhookAck)
async def paystack_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_paystack_signature: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: EmailNotifier = Depends(get_notifier),
):
    raw_body = await request.body()
    webhooks.authenticate_delivery(raw_body, x_paystack_signature, settings)

    # Verified deliveries are acknowledged from here on, whatever happens
    try:
        event = webhooks.parse_event(raw_body)
        order, created = webhooks.handle_event(db, event)
    except Exception:
        db.rollback()
        logger.exception("Failed to process verified Paystack webhook")
        return schemas.WebhookAck()

    if created:
        snapshot = schemas.OrderRead.model_validate(order)
        background_tasks.add_task(notifier.send_order_confirmation, snapshot)
        background_tasks.add_task(notifier.send_payment_receipt, snapshot)
    return schemas.WebhookAck()


# -------------------- Orders --------------------
@app.get("/orders", response_model=List[schemas.OrderRead])
async def my_orders(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return crud.list_orders_for_user(db, user)


# -------------------- Admin --------------------
@app.get("/admin/orders", response_model=List[schemas.OrderRead])
async def admin_orders(admin: models.User = Depends(require_admin), db: Session = Depends(get_db)):
    logger.info("Admin %s accessing all orders", admin.id)
    return crud.list_orders(db)


@app.get("/admin/orders/{order_id}", response_model=schemas.OrderRead)
async def admin_order(order_id: int, admin: models.User = Depends(require_admin), db: Session = Depends(get_db)):
    order = crud.get_order(db, order_id)
    if not order:
        raise NotFoundError("order not found")
    return order


@app.patch("/admin/orders/{order_id}/status", response_model=schemas.OrderRead)
async def admin_update_order_status(
    order_id: int,
    payload: schemas.OrderStatusUpdate,
    admin: models.User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    order = crud.update_order_status(db, order_id, payload.status)
    if not order:
        raise NotFoundError("order not found")
    logger.info("Admin %s set order %s status to %s", admin.id, order_id, payload.status.value)
    return order


@app.get("/admin/stats", response_model=schemas.OrderStats)
async def admin_stats(admin: models.User = Depends(require_admin), db: Session = Depends(get_db)):
    return crud.order_stats(db)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
