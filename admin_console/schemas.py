"""
Pydantic schemas for the admin console API.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from admin_console.identity import Role
from admin_console.orders import OrderStatus, PaymentStatus
from admin_console.session import SessionStatus


class SignInRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=1024)


class IdentityResponse(BaseModel):
    id: str
    email: str
    display_name: str
    role: Role


class SessionResponse(BaseModel):
    status: SessionStatus
    identity: Optional[IdentityResponse] = None
    last_error: Optional[str] = None


class SignInResponse(BaseModel):
    success: bool
    session: SessionResponse


class SendEmailRequest(BaseModel):
    type: str
    data: dict = Field(default_factory=dict)


class SendEmailResponse(BaseModel):
    success: Literal[True]


class EmailTemplateResponse(BaseModel):
    type: str
    name: str
    subject: str
    body: str
    description: str
    variables: list[str]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class EmailTemplateListResponse(BaseModel):
    templates: list[EmailTemplateResponse]


class UpdateTemplateRequest(BaseModel):
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)


class SeedTemplatesResponse(BaseModel):
    created: list[str]


class PreviewTemplateRequest(BaseModel):
    variables: dict[str, Any] = Field(default_factory=dict)


class RenderedMessageResponse(BaseModel):
    subject: str
    body: str


class OrderResponse(BaseModel):
    id: str
    order_number: str
    customer: dict
    shipping_address: dict
    items: list[dict]
    subtotal: int
    tax: int
    shipping: int
    total: int
    payment_method: str
    payment_status: PaymentStatus
    status: OrderStatus
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]


class OrderStatsResponse(BaseModel):
    pending: int
    processing: int
    shipped: int
    delivered: int
    total_sales: int


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


class ShippingCompleteRequest(BaseModel):
    tracking_number: str = Field(..., min_length=1, max_length=64)
    carrier: str = Field(..., min_length=1, max_length=64)


class UserResponse(BaseModel):
    id: str
    email: str
    display_name: str
    role: Role
    verification_status: str
    created_at: Optional[str] = None


class UserListResponse(BaseModel):
    users: list[UserResponse]
    next_cursor: Optional[str] = None


class UpdateRoleRequest(BaseModel):
    role: Role


class ProductImagesResponse(BaseModel):
    images: list[str]
