import re
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, PositiveInt, field_validator
from pydantic.config import ConfigDict

from .models import OrderStatus, UserRole

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]")


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=50)
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)

    @field_validator("password")
    def strong_password(cls, v: str):
        if not PASSWORD_PATTERN.match(v):
            raise ValueError(
                "password must contain at least one uppercase letter, one lowercase letter, "
                "one number, and one special character"
            )
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserRead(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: UserRole = UserRole.USER
    is_active: bool = True
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    user: UserRead
    access_token: str
    token_type: str = "bearer"
    message: str


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., gt=Decimal("0"))
    description: Optional[str] = Field(default=None, max_length=2000)


class ProductRead(BaseModel):
    id: int
    name: str
    price: Decimal
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CheckoutRequest(BaseModel):
    email: EmailStr
    # Amount in major units (e.g. Naira)
    amount: Decimal = Field(..., gt=Decimal("0"))
    product_id: PositiveInt
    reference: Optional[str] = Field(default=None, min_length=1, max_length=100)


class CheckoutResponse(BaseModel):
    authorization_url: str
    reference: str
    message: str = "Payment link generated successfully"


class OrderRead(BaseModel):
    id: int
    reference: str
    amount: Decimal
    email: str
    status: OrderStatus
    product_id: Optional[int] = None
    user_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderStats(BaseModel):
    total_orders: int
    total_revenue: Decimal
    paid_orders: int
    pending_orders: int
    failed_orders: int
    refunded_orders: int


class WebhookAck(BaseModel):
    status: str = "success"


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
    uptime: float
    environment: str

