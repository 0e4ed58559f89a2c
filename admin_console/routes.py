"""
HTTP routes for the admin console API.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Response,
    UploadFile,
)
from fastapi.responses import JSONResponse

from admin_console.dependencies import (
    get_dispatcher,
    get_order_actions,
    get_order_service,
    get_session_gate,
    get_storage_client,
    get_user_directory,
    require_admin,
)
from admin_console.identity import IdentityRecord, Role, UserDirectory, UserNotFound
from admin_console.mail import TransportError
from admin_console.notifications import (
    EmailTemplate,
    InvalidNotificationPayload,
    NotificationDispatcher,
    TemplateNotFound,
    TemplateType,
    UnknownTemplateType,
    parse_template_type,
    variables_from_payload,
)
from admin_console.orders import (
    Order,
    OrderActionError,
    OrderActions,
    OrderNotFound,
    OrderService,
    OrderStatus,
    PaymentStatus,
)
from admin_console.schemas import (
    EmailTemplateListResponse,
    EmailTemplateResponse,
    IdentityResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    PreviewTemplateRequest,
    ProductImagesResponse,
    RenderedMessageResponse,
    SeedTemplatesResponse,
    SendEmailRequest,
    SendEmailResponse,
    SessionResponse,
    ShippingCompleteRequest,
    SignInRequest,
    SignInResponse,
    UpdateOrderStatusRequest,
    UpdateRoleRequest,
    UpdateTemplateRequest,
    UserListResponse,
    UserResponse,
)
from admin_console.session import Session, SessionGate
from admin_console.storage import (
    InvalidUpload,
    StorageClient,
    StorageError,
    delete_product_image,
    upload_product_images,
)
from admin_console.store import DocumentStoreError

logger = logging.getLogger(__name__)

router = APIRouter()


def _session_response(session: Session) -> SessionResponse:
    identity = None
    if session.identity is not None:
        identity = IdentityResponse(
            id=session.identity.id,
            email=session.identity.email,
            display_name=session.identity.display_name,
            role=session.identity.role,
        )
    return SessionResponse(
        status=session.status, identity=identity, last_error=session.last_error
    )


def _template_response(template: EmailTemplate) -> EmailTemplateResponse:
    return EmailTemplateResponse(
        type=template.type.value,
        name=template.name,
        subject=template.subject,
        body=template.body,
        description=template.description,
        variables=template.variables,
        created_at=template.created_at,
        updated_at=template.updated_at,
    )


def _order_response(order: Order) -> OrderResponse:
    data = asdict(order)
    data["payment_method"] = order.payment_method.value
    data["payment_status"] = order.payment_status.value
    data["status"] = order.status.value
    return OrderResponse(**data)


def _user_response(record: IdentityRecord) -> UserResponse:
    return UserResponse(
        id=record.id,
        email=record.email,
        display_name=record.display_name,
        role=record.role,
        verification_status=record.verification_status,
        created_at=record.created_at,
    )


def _template_type_or_400(value: str) -> TemplateType:
    try:
        return parse_template_type(value)
    except UnknownTemplateType:
        raise HTTPException(status_code=400, detail="Unknown template type")


@router.get("/auth/session", response_model=SessionResponse)
def get_session(gate: SessionGate = Depends(get_session_gate)):
    return _session_response(gate.session)


@router.post("/auth/sign-in", response_model=SignInResponse)
def sign_in(payload: SignInRequest, gate: SessionGate = Depends(get_session_gate)):
    success = gate.sign_in(payload.email, payload.password)
    return SignInResponse(success=success, session=_session_response(gate.session))


@router.post("/auth/sign-out", response_model=SessionResponse)
def sign_out(gate: SessionGate = Depends(get_session_gate)):
    gate.sign_out()
    return _session_response(gate.session)


@router.post("/send-email", response_model=SendEmailResponse)
def send_email(
    payload: SendEmailRequest,
    _: IdentityRecord = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Render the template for `type` with `data` and mail it to `data.to`.
    """
    try:
        template_type = parse_template_type(payload.type)
        recipient, variables = variables_from_payload(payload.data)
    except UnknownTemplateType:
        return JSONResponse(status_code=400, content={"error": "Unknown email type"})
    except InvalidNotificationPayload as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    try:
        dispatcher.dispatch(template_type, recipient, variables)
    except (TemplateNotFound, TransportError, DocumentStoreError) as e:
        logger.error("Failed to send %s email: %s", template_type.value, e)
        return JSONResponse(status_code=500, content={"error": "Failed to send email"})
    return SendEmailResponse(success=True)


@router.get("/email-templates", response_model=EmailTemplateListResponse)
def list_email_templates(
    _: IdentityRecord = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    templates = dispatcher.list_templates()
    return EmailTemplateListResponse(
        templates=[_template_response(t) for t in templates]
    )


@router.post("/email-templates/seed", response_model=SeedTemplatesResponse)
def seed_email_templates(
    _: IdentityRecord = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    created = dispatcher.seed_defaults()
    return SeedTemplatesResponse(created=[t.value for t in created])


@router.get("/email-templates/{template_type}", response_model=EmailTemplateResponse)
def get_email_template(
    template_type: str,
    _: IdentityRecord = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    try:
        template = dispatcher.get_template(_template_type_or_400(template_type))
    except TemplateNotFound:
        raise HTTPException(status_code=404, detail="Template not found")
    return _template_response(template)


@router.put("/email-templates/{template_type}", response_model=EmailTemplateResponse)
def update_email_template(
    template_type: str,
    payload: UpdateTemplateRequest,
    _: IdentityRecord = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    template = dispatcher.upsert_template(
        _template_type_or_400(template_type), payload.subject, payload.body
    )
    return _template_response(template)


@router.post(
    "/email-templates/{template_type}/seed", response_model=EmailTemplateResponse
)
def seed_email_template(
    template_type: str,
    _: IdentityRecord = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    template = dispatcher.seed_template(_template_type_or_400(template_type))
    return _template_response(template)


@router.post(
    "/email-templates/{template_type}/preview", response_model=RenderedMessageResponse
)
def preview_email_template(
    template_type: str,
    payload: PreviewTemplateRequest,
    _: IdentityRecord = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    try:
        message = dispatcher.render(
            _template_type_or_400(template_type), payload.variables
        )
    except TemplateNotFound:
        raise HTTPException(status_code=404, detail="Template not found")
    return RenderedMessageResponse(subject=message.subject, body=message.body)


@router.get("/orders", response_model=OrderListResponse)
def list_orders(
    status: Optional[OrderStatus] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    _: IdentityRecord = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
):
    found = orders.list_orders(status=status, payment_status=payment_status)
    return OrderListResponse(orders=[_order_response(o) for o in found])


@router.get("/orders/stats", response_model=OrderStatsResponse)
def order_stats(
    _: IdentityRecord = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
):
    return OrderStatsResponse(**asdict(orders.stats()))


@router.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: str,
    _: IdentityRecord = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
):
    order = orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return _order_response(order)


@router.patch("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: str,
    payload: UpdateOrderStatusRequest,
    _: IdentityRecord = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
):
    try:
        order = orders.update_status(order_id, payload.status)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    return _order_response(order)


@router.post("/orders/{order_id}/payment-confirmed", response_model=OrderResponse)
def confirm_payment(
    order_id: str,
    _: IdentityRecord = Depends(require_admin),
    actions: OrderActions = Depends(get_order_actions),
):
    """Send the payment confirmation mail, then mark the order confirmed."""
    try:
        order = actions.confirm_payment(order_id)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    except OrderActionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return _order_response(order)


@router.post("/orders/{order_id}/shipping-complete", response_model=OrderResponse)
def complete_shipping(
    order_id: str,
    payload: ShippingCompleteRequest,
    _: IdentityRecord = Depends(require_admin),
    actions: OrderActions = Depends(get_order_actions),
):
    """Send the shipping mail with tracking details, then mark the order shipped."""
    try:
        order = actions.complete_shipping(
            order_id, payload.tracking_number, payload.carrier
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    except OrderActionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return _order_response(order)


@router.get("/users", response_model=UserListResponse)
def list_users(
    role: Optional[Role] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    page_size: int = Query(50, ge=1, le=200),
    cursor: Optional[str] = Query(None),
    _: IdentityRecord = Depends(require_admin),
    directory: UserDirectory = Depends(get_user_directory),
):
    users, next_cursor = directory.list_users(
        role=role, search=search, page_size=page_size, cursor=cursor
    )
    return UserListResponse(
        users=[_user_response(u) for u in users], next_cursor=next_cursor
    )


@router.patch("/users/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: str,
    payload: UpdateRoleRequest,
    _: IdentityRecord = Depends(require_admin),
    directory: UserDirectory = Depends(get_user_directory),
):
    try:
        record = directory.update_role(user_id, payload.role)
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")
    return _user_response(record)


@router.post("/products/{product_id}/images", response_model=ProductImagesResponse)
async def upload_images(
    product_id: str,
    files: list[UploadFile] = File(...),
    existing_images: list[str] = Form([]),
    _: IdentityRecord = Depends(require_admin),
    storage: StorageClient = Depends(get_storage_client),
):
    uploads = []
    for upload in files:
        data = await upload.read()
        uploads.append(
            (
                upload.filename or "image.jpg",
                data,
                upload.content_type or "application/octet-stream",
            )
        )
    try:
        images = upload_product_images(storage, product_id, uploads, existing_images)
    except InvalidUpload as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.error("Image upload for product %s failed: %s", product_id, e)
        raise HTTPException(status_code=500, detail="Image upload failed")
    return ProductImagesResponse(images=images)


@router.delete("/products/{product_id}/images", status_code=204)
def delete_image(
    product_id: str,
    url: str = Query(..., min_length=1),
    _: IdentityRecord = Depends(require_admin),
    storage: StorageClient = Depends(get_storage_client),
):
    try:
        delete_product_image(storage, url)
    except StorageError as e:
        logger.error("Image delete for product %s failed: %s", product_id, e)
        raise HTTPException(status_code=500, detail="Image delete failed")
    return Response(status_code=204)
