"""
Order records and the operator actions that notify the customer before
advancing an order's status.
"""

from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from dacite import Config, from_dict

from admin_console.json_utils import convert_keys
from admin_console.mail import TransportError
from admin_console.notifications import (
    NotificationDispatcher,
    TemplateNotFound,
    TemplateType,
    format_amount,
)
from admin_console.store import DocumentStore, DocumentStoreError, timestamp

logger = logging.getLogger(__name__)

ORDERS_COLLECTION = "orders"
ESTIMATED_SHIPPING_DAYS = 3
UNKNOWN_CARRIER_TRACKING_MESSAGE = "配送業者のサイトで追跡番号をご確認ください"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"


class OrderNotFound(Exception):
    pass


class OrderActionError(Exception):
    """An operator action failed before the order was changed."""


@dataclass
class Customer:
    name: str
    email: str
    phone: str = ""


@dataclass
class ShippingAddress:
    zip_code: str
    prefecture: str
    city: str
    address: str
    building: Optional[str] = None


@dataclass
class OrderItem:
    product_id: str
    product_name: str
    quantity: int
    price: int


@dataclass
class Order:
    id: str
    order_number: str
    customer: Customer
    shipping_address: ShippingAddress
    items: list[OrderItem] = field(default_factory=list)
    subtotal: int = 0
    tax: int = 0
    shipping: int = 0
    total: int = 0
    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: OrderStatus = OrderStatus.PENDING
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_document(cls, doc: dict) -> "Order":
        data = convert_keys(doc, "camel_to_snake")
        for key in ("created_at", "updated_at"):
            value = data.get(key)
            data[key] = value.isoformat() if hasattr(value, "isoformat") else value
        return from_dict(
            data_class=cls, data=data, config=Config(cast=[Enum], check_types=False)
        )

    def to_document(self) -> dict:
        def factory(items):
            return {k: v.value if isinstance(v, Enum) else v for k, v in items}

        data = asdict(self, dict_factory=factory)
        data.pop("id")
        return convert_keys(data, "snake_to_camel")


@dataclass
class OrderStats:
    pending: int = 0
    processing: int = 0
    shipped: int = 0
    delivered: int = 0
    total_sales: int = 0


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{random.randint(0, 9999):04d}"


class OrderService:
    def __init__(self, store: DocumentStore):
        self._store = store

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> list[Order]:
        filters = []
        if status is not None:
            filters.append(("status", "==", status.value))
        if payment_status is not None:
            filters.append(("paymentStatus", "==", payment_status.value))
        docs = self._store.query(
            ORDERS_COLLECTION, filters=filters, order_by=("createdAt", "desc")
        )
        return [Order.from_document(doc) for doc in docs]

    def get(self, order_id: str) -> Optional[Order]:
        doc = self._store.get_by_id(ORDERS_COLLECTION, order_id)
        return Order.from_document(doc) if doc else None

    def require(self, order_id: str) -> Order:
        order = self.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def get_by_number(self, order_number: str) -> Optional[Order]:
        docs = self._store.query(
            ORDERS_COLLECTION, filters=[("orderNumber", "==", order_number)], limit=1
        )
        return Order.from_document(docs[0]) if docs else None

    def create(self, order: Order) -> Order:
        """Store a new order under a generated id and order number."""
        now = timestamp()
        order.order_number = generate_order_number()
        order.created_at = now
        order.updated_at = now
        order.id = self._store.add(ORDERS_COLLECTION, order.to_document())
        logger.info("Created order %s (%s)", order.order_number, order.id)
        return order

    def update_status(self, order_id: str, status: OrderStatus) -> Order:
        self.require(order_id)
        self._store.upsert(
            ORDERS_COLLECTION,
            order_id,
            {"status": status.value, "updatedAt": timestamp()},
            merge=True,
        )
        logger.info("Order %s status -> %s", order_id, status.value)
        return self.require(order_id)

    def update_payment_status(
        self, order_id: str, payment_status: PaymentStatus
    ) -> Order:
        self.require(order_id)
        self._store.upsert(
            ORDERS_COLLECTION,
            order_id,
            {"paymentStatus": payment_status.value, "updatedAt": timestamp()},
            merge=True,
        )
        logger.info("Order %s payment status -> %s", order_id, payment_status.value)
        return self.require(order_id)

    def stats(self) -> OrderStats:
        stats = OrderStats()
        for order in self.list_orders():
            if order.status == OrderStatus.PENDING:
                stats.pending += 1
            elif order.status in (OrderStatus.PROCESSING, OrderStatus.CONFIRMED):
                stats.processing += 1
            elif order.status == OrderStatus.SHIPPED:
                stats.shipped += 1
            elif order.status == OrderStatus.DELIVERED:
                stats.delivered += 1
            stats.total_sales += order.total
        return stats


def format_date_ja(value: date) -> str:
    return f"{value.year}年{value.month}月{value.day}日"


def tracking_url_for(carrier: str, tracking_number: str) -> str:
    name = carrier.lower()
    if "ヤマト" in carrier or "yamato" in name:
        return f"https://jizen.kuronekoyamato.co.jp/jizen/servlet/crjz.b.NQ0010?id={tracking_number}"
    if "佐川" in carrier or "sagawa" in name:
        return f"https://k2k.sagawa-exp.co.jp/p/web/okurijosearch.do?okurijoNo={tracking_number}"
    if "郵便" in carrier or "ゆうパック" in carrier or "japan post" in name:
        return f"https://trackings.post.japanpost.jp/services/srv/search/?requestNo1={tracking_number}"
    return UNKNOWN_CARRIER_TRACKING_MESSAGE


def format_shipping_address(order: Order) -> str:
    address = order.shipping_address
    lines = [
        f"{order.customer.name} 様",
        f"〒{address.zip_code}",
        f"{address.prefecture}{address.city}{address.address}",
    ]
    if address.building:
        lines.append(address.building)
    return "\n".join(lines)


class OrderActions:
    """
    Notify-then-record operator actions.

    The notification is sent first; the order status only changes once the
    send succeeded, so a failed action leaves the order untouched.
    """

    def __init__(
        self,
        orders: OrderService,
        dispatcher: NotificationDispatcher,
        today: Callable[[], date] = date.today,
    ):
        self._orders = orders
        self._dispatcher = dispatcher
        self._today = today

    def confirm_payment(self, order_id: str) -> Order:
        order = self._orders.require(order_id)
        today = self._today()
        variables = {
            "customer_name": order.customer.name,
            "order_number": order.order_number,
            "payment_date": format_date_ja(today),
            "total": format_amount(order.total),
            "estimated_shipping_date": format_date_ja(
                today + timedelta(days=ESTIMATED_SHIPPING_DAYS)
            ),
        }
        self._notify(TemplateType.PAYMENT_CONFIRMED, order, variables)
        return self._orders.update_status(order.id, OrderStatus.CONFIRMED)

    def complete_shipping(
        self, order_id: str, tracking_number: str, carrier: str
    ) -> Order:
        tracking_number = (tracking_number or "").strip()
        carrier = (carrier or "").strip()
        if not tracking_number or not carrier:
            raise ValueError("Tracking number and carrier are required")
        order = self._orders.require(order_id)
        variables = {
            "customer_name": order.customer.name,
            "order_number": order.order_number,
            "shipping_date": format_date_ja(self._today()),
            "carrier": carrier,
            "tracking_number": tracking_number,
            "tracking_url": tracking_url_for(carrier, tracking_number),
            "shipping_address": format_shipping_address(order),
        }
        self._notify(TemplateType.SHIPPING_COMPLETE, order, variables)
        return self._orders.update_status(order.id, OrderStatus.SHIPPED)

    def _notify(self, template_type: TemplateType, order: Order, variables: dict) -> None:
        try:
            self._dispatcher.dispatch(template_type, order.customer.email, variables)
        except (TemplateNotFound, TransportError, DocumentStoreError) as e:
            logger.warning(
                "Order %s left at %s: %s notification failed",
                order.id,
                order.status.value,
                template_type.value,
            )
            raise OrderActionError(
                f"Failed to send {template_type.value} notification for order "
                f"{order.order_number}: {e}"
            ) from e
