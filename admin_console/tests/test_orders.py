import re
import unittest
from datetime import date, datetime, timezone

from admin_console.mail import InMemoryMailTransport
from admin_console.notifications import (
    TEMPLATES_COLLECTION,
    NotificationDispatcher,
    TemplateType,
)
from admin_console.orders import (
    UNKNOWN_CARRIER_TRACKING_MESSAGE,
    Customer,
    Order,
    OrderActionError,
    OrderActions,
    OrderItem,
    OrderNotFound,
    OrderService,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
    format_date_ja,
    format_shipping_address,
    generate_order_number,
    tracking_url_for,
)
from admin_console.store import InMemoryDocumentStore


def make_order(total=12800, name="山田太郎", email="taro@example.com", building=None):
    return Order(
        id="",
        order_number="",
        customer=Customer(name=name, email=email, phone="090-0000-0000"),
        shipping_address=ShippingAddress(
            zip_code="150-0001",
            prefecture="東京都",
            city="渋谷区",
            address="神宮前1-2-3",
            building=building,
        ),
        items=[OrderItem("p1", "プロテイン", 2, 4000)],
        subtotal=8000,
        tax=800,
        shipping=4000,
        total=total,
        payment_method=PaymentMethod.BANK_TRANSFER,
    )


class OrderServiceTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.orders = OrderService(self.store)

    def test_create_and_read_back(self):
        created = self.orders.create(make_order(building="ハイツ101"))
        self.assertTrue(created.id)
        self.assertRegex(created.order_number, r"^ORD-\d{8}-\d{4}$")

        loaded = self.orders.get(created.id)
        self.assertEqual(loaded, created)
        self.assertEqual(loaded.payment_method, PaymentMethod.BANK_TRANSFER)
        self.assertEqual(loaded.items[0].product_name, "プロテイン")

        stored = self.store.get_by_id("orders", created.id)
        self.assertEqual(stored["paymentStatus"], "pending")
        self.assertEqual(stored["shippingAddress"]["zipCode"], "150-0001")

    def test_get_by_number(self):
        created = self.orders.create(make_order())
        self.assertEqual(self.orders.get_by_number(created.order_number).id, created.id)
        self.assertIsNone(self.orders.get_by_number("ORD-00000000-0000"))

    def test_require_missing(self):
        with self.assertRaises(OrderNotFound):
            self.orders.require("missing")

    def test_list_filters(self):
        first = self.orders.create(make_order())
        second = self.orders.create(make_order())
        self.orders.update_status(second.id, OrderStatus.SHIPPED)
        self.orders.update_payment_status(first.id, PaymentStatus.PAID)

        shipped = self.orders.list_orders(status=OrderStatus.SHIPPED)
        self.assertEqual([o.id for o in shipped], [second.id])
        paid = self.orders.list_orders(payment_status=PaymentStatus.PAID)
        self.assertEqual([o.id for o in paid], [first.id])

    def test_stats(self):
        pending = self.orders.create(make_order(total=1000))
        confirmed = self.orders.create(make_order(total=2000))
        shipped = self.orders.create(make_order(total=3000))
        self.orders.update_status(confirmed.id, OrderStatus.CONFIRMED)
        self.orders.update_status(shipped.id, OrderStatus.SHIPPED)
        stats = self.orders.stats()
        self.assertEqual(stats.pending, 1)
        self.assertEqual(stats.processing, 1)
        self.assertEqual(stats.shipped, 1)
        self.assertEqual(stats.delivered, 0)
        self.assertEqual(stats.total_sales, 6000)
        self.assertIsNotNone(pending.id)

    def test_generate_order_number(self):
        number = generate_order_number(datetime(2024, 3, 20, tzinfo=timezone.utc))
        self.assertTrue(re.match(r"^ORD-20240320-\d{4}$", number))


class FormattingTests(unittest.TestCase):
    def test_format_date_ja(self):
        self.assertEqual(format_date_ja(date(2024, 3, 5)), "2024年3月5日")

    def test_tracking_urls(self):
        self.assertIn("kuronekoyamato", tracking_url_for("ヤマト運輸", "1234"))
        self.assertIn("sagawa", tracking_url_for("Sagawa Express", "1234"))
        self.assertTrue(tracking_url_for("日本郵便", "1234").endswith("requestNo1=1234"))
        self.assertEqual(
            tracking_url_for("Local Courier", "1234"), UNKNOWN_CARRIER_TRACKING_MESSAGE
        )

    def test_shipping_address_block(self):
        block = format_shipping_address(make_order(building="ハイツ101"))
        self.assertEqual(
            block, "山田太郎 様\n〒150-0001\n東京都渋谷区神宮前1-2-3\nハイツ101"
        )
        self.assertNotIn("None", format_shipping_address(make_order()))


class OrderActionsTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.transport = InMemoryMailTransport()
        self.dispatcher = NotificationDispatcher(self.store, self.transport)
        self.dispatcher.seed_defaults()
        self.orders = OrderService(self.store)
        self.actions = OrderActions(
            self.orders, self.dispatcher, today=lambda: date(2024, 3, 20)
        )
        self.order = self.orders.create(make_order())

    def test_confirm_payment_notifies_then_confirms(self):
        updated = self.actions.confirm_payment(self.order.id)

        self.assertEqual(updated.status, OrderStatus.CONFIRMED)
        self.assertEqual(len(self.transport.sent), 1)
        sent = self.transport.sent[0]
        self.assertEqual(sent.to, "taro@example.com")
        self.assertIn(self.order.order_number, sent.subject)
        self.assertIn("入金確認日: 2024年3月20日", sent.text)
        self.assertIn("入金金額: ¥12,800", sent.text)
        self.assertIn("発送予定日: 2024年3月23日", sent.text)

    def test_transport_failure_leaves_order_pending(self):
        self.transport.failing = True
        with self.assertRaises(OrderActionError):
            self.actions.confirm_payment(self.order.id)
        self.assertEqual(self.orders.get(self.order.id).status, OrderStatus.PENDING)

    def test_missing_template_leaves_order_pending(self):
        self.store.delete(TEMPLATES_COLLECTION, TemplateType.SHIPPING_COMPLETE.value)
        with self.assertRaises(OrderActionError):
            self.actions.complete_shipping(self.order.id, "1234-5678", "ヤマト運輸")
        self.assertEqual(self.orders.get(self.order.id).status, OrderStatus.PENDING)
        self.assertEqual(self.transport.sent, [])

    def test_complete_shipping(self):
        updated = self.actions.complete_shipping(self.order.id, " 1234-5678 ", "佐川急便")

        self.assertEqual(updated.status, OrderStatus.SHIPPED)
        text = self.transport.sent[0].text
        self.assertIn("追跡番号: 1234-5678", text)
        self.assertIn("配送業者: 佐川急便", text)
        self.assertIn("okurijoNo=1234-5678", text)
        self.assertIn("〒150-0001", text)
        self.assertIn("発送日: 2024年3月20日", text)

    def test_complete_shipping_requires_tracking_details(self):
        with self.assertRaises(ValueError):
            self.actions.complete_shipping(self.order.id, "  ", "ヤマト運輸")
        with self.assertRaises(ValueError):
            self.actions.complete_shipping(self.order.id, "1234", "")
        self.assertEqual(self.transport.sent, [])

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            self.actions.confirm_payment("missing")


if __name__ == "__main__":
    unittest.main()
