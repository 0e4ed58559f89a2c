import unittest
from unittest import mock

from fastapi.testclient import TestClient

from admin_console.app import create_app
from admin_console.dependencies import (
    get_auth_backend,
    get_document_store,
    get_mail_transport,
    get_order_service,
    get_storage_client,
    get_user_directory,
    reset_dependencies,
)
from admin_console.identity import IdentityRecord, Role
from admin_console.orders import Customer, Order, OrderStatus, ShippingAddress
from admin_console.store import DocumentStoreError

PNG = b"\x89PNG\r\n\x1a\nfake"


class AdminConsoleApiTestCase(unittest.TestCase):
    def setUp(self):
        reset_dependencies()
        self.addCleanup(reset_dependencies)
        backend = get_auth_backend()
        directory = get_user_directory()
        backend.create_account("admin@example.com", "secret", uid="admin-1")
        directory.save(
            IdentityRecord(
                id="admin-1",
                email="admin@example.com",
                display_name="Admin",
                role=Role.ADMIN,
                created_at="2024-01-02T00:00:00+00:00",
            )
        )
        backend.create_account("viewer@example.com", "secret", uid="viewer-1")
        directory.save(
            IdentityRecord(
                id="viewer-1",
                email="viewer@example.com",
                display_name="Viewer",
                role=Role.VIEWER,
                created_at="2024-01-01T00:00:00+00:00",
            )
        )
        self.client = TestClient(create_app())

    def sign_in(self, email="admin@example.com", password="secret"):
        return self.client.post(
            "/api/auth/sign-in", json={"email": email, "password": password}
        )

    def seed_templates(self):
        response = self.client.post("/api/email-templates/seed")
        self.assertEqual(response.status_code, 200)


class AuthApiTests(AdminConsoleApiTestCase):
    def test_session_starts_unauthenticated_and_sets_cookie(self):
        response = self.client.get("/api/auth/session")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "unauthenticated")
        self.assertIn("console_session", response.cookies)

    def test_admin_sign_in_and_out(self):
        response = self.sign_in()
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["session"]["status"], "authenticated")
        self.assertEqual(body["session"]["identity"]["role"], "admin")

        session = self.client.get("/api/auth/session").json()
        self.assertEqual(session["identity"]["id"], "admin-1")

        response = self.client.post("/api/auth/sign-out")
        self.assertEqual(response.json()["status"], "unauthenticated")
        self.assertEqual(self.client.get("/api/email-templates").status_code, 401)

    def test_wrong_password(self):
        body = self.sign_in(password="nope").json()
        self.assertFalse(body["success"])
        self.assertEqual(body["session"]["status"], "unauthenticated")
        self.assertEqual(body["session"]["last_error"], "Invalid email or password")

    def test_non_admin_is_rejected(self):
        body = self.sign_in("viewer@example.com").json()
        self.assertFalse(body["success"])
        self.assertEqual(body["session"]["status"], "rejected")
        self.assertEqual(body["session"]["last_error"], "No admin access")

        response = self.client.get("/api/orders")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "No admin access")

    def test_admin_routes_require_sign_in(self):
        self.assertEqual(self.client.get("/api/orders").status_code, 401)
        response = self.client.post(
            "/api/send-email",
            json={"type": "payment_confirmed", "data": {"to": "a@example.com"}},
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(get_mail_transport().sent, [])


class SendEmailApiTests(AdminConsoleApiTestCase):
    def setUp(self):
        super().setUp()
        self.sign_in()

    def test_send_email(self):
        self.seed_templates()
        response = self.client.post(
            "/api/send-email",
            json={
                "type": "payment_confirmed",
                "data": {
                    "to": "taro@example.com",
                    "customerName": "山田太郎",
                    "orderNumber": "ORD-20240320-0001",
                    "total": 12800,
                },
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True})
        [sent] = get_mail_transport().sent
        self.assertEqual(sent.to, "taro@example.com")
        self.assertIn("ORD-20240320-0001", sent.subject)
        self.assertIn("¥12,800", sent.text)
        self.assertIn("{{payment_date}}", sent.text)

    def test_unknown_type(self):
        response = self.client.post(
            "/api/send-email", json={"type": "newsletter", "data": {"to": "a@example.com"}}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Unknown email type"})

    def test_missing_recipient(self):
        response = self.client.post(
            "/api/send-email", json={"type": "payment_confirmed", "data": {}}
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    def test_transport_failure(self):
        self.seed_templates()
        get_mail_transport().failing = True
        response = self.client.post(
            "/api/send-email",
            json={"type": "shipping_complete", "data": {"to": "a@example.com"}},
        )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to send email"})

    def test_unseeded_template(self):
        response = self.client.post(
            "/api/send-email",
            json={"type": "shipping_complete", "data": {"to": "a@example.com"}},
        )
        self.assertEqual(response.status_code, 500)


class EmailTemplateApiTests(AdminConsoleApiTestCase):
    def setUp(self):
        super().setUp()
        self.sign_in()

    def test_bulk_seed_is_idempotent(self):
        first = self.client.post("/api/email-templates/seed").json()
        self.assertEqual(len(first["created"]), 4)
        second = self.client.post("/api/email-templates/seed").json()
        self.assertEqual(second["created"], [])
        templates = self.client.get("/api/email-templates").json()["templates"]
        self.assertEqual(
            [t["type"] for t in templates],
            [
                "order_complete_credit",
                "order_complete_bank",
                "payment_confirmed",
                "shipping_complete",
            ],
        )

    def test_update_then_preview(self):
        response = self.client.put(
            "/api/email-templates/payment_confirmed",
            json={"subject": "Paid {{order_number}}", "body": "Hi {{customer_name}}"},
        )
        self.assertEqual(response.status_code, 200)
        response = self.client.post(
            "/api/email-templates/payment_confirmed/preview",
            json={"variables": {"order_number": "ORD-1"}},
        )
        self.assertEqual(
            response.json(), {"subject": "Paid ORD-1", "body": "Hi {{customer_name}}"}
        )

    def test_single_seed_restores_default(self):
        self.client.put(
            "/api/email-templates/shipping_complete",
            json={"subject": "custom", "body": "custom"},
        )
        response = self.client.post("/api/email-templates/shipping_complete/seed")
        self.assertEqual(response.status_code, 200)
        self.assertIn("{{tracking_number}}", response.json()["body"])

    def test_missing_and_unknown_templates(self):
        self.assertEqual(
            self.client.get("/api/email-templates/payment_confirmed").status_code, 404
        )
        self.assertEqual(self.client.get("/api/email-templates/promo").status_code, 400)


class OrderApiTests(AdminConsoleApiTestCase):
    def setUp(self):
        super().setUp()
        self.sign_in()
        self.order = get_order_service().create(
            Order(
                id="",
                order_number="",
                customer=Customer(name="山田太郎", email="taro@example.com"),
                shipping_address=ShippingAddress(
                    zip_code="150-0001",
                    prefecture="東京都",
                    city="渋谷区",
                    address="神宮前1-2-3",
                ),
                total=12800,
            )
        )

    def test_list_get_and_stats(self):
        orders = self.client.get("/api/orders", params={"status": "pending"}).json()
        self.assertEqual([o["id"] for o in orders["orders"]], [self.order.id])
        response = self.client.get(f"/api/orders/{self.order.id}")
        self.assertEqual(response.json()["order_number"], self.order.order_number)
        self.assertEqual(self.client.get("/api/orders/missing").status_code, 404)
        stats = self.client.get("/api/orders/stats").json()
        self.assertEqual(stats["pending"], 1)
        self.assertEqual(stats["total_sales"], 12800)

    def test_update_status(self):
        response = self.client.patch(
            f"/api/orders/{self.order.id}/status", json={"status": "delivered"}
        )
        self.assertEqual(response.json()["status"], "delivered")

    def test_payment_confirmed(self):
        self.seed_templates()
        response = self.client.post(f"/api/orders/{self.order.id}/payment-confirmed")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "confirmed")
        self.assertEqual(len(get_mail_transport().sent), 1)

    def test_failed_notification_leaves_order_pending(self):
        self.seed_templates()
        get_mail_transport().failing = True
        response = self.client.post(f"/api/orders/{self.order.id}/payment-confirmed")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            get_order_service().get(self.order.id).status, OrderStatus.PENDING
        )

    def test_shipping_complete(self):
        self.seed_templates()
        response = self.client.post(
            f"/api/orders/{self.order.id}/shipping-complete",
            json={"tracking_number": "1234-5678", "carrier": "ヤマト運輸"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "shipped")
        self.assertIn("kuronekoyamato", get_mail_transport().sent[0].text)

    def test_shipping_complete_validation(self):
        response = self.client.post(
            f"/api/orders/{self.order.id}/shipping-complete",
            json={"tracking_number": "   ", "carrier": "ヤマト運輸"},
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/orders/missing/shipping-complete",
            json={"tracking_number": "1", "carrier": "ヤマト運輸"},
        )
        self.assertEqual(response.status_code, 404)


class UserApiTests(AdminConsoleApiTestCase):
    def setUp(self):
        super().setUp()
        self.sign_in()

    def test_list_and_filter(self):
        users = self.client.get("/api/users").json()["users"]
        self.assertEqual([u["id"] for u in users], ["admin-1", "viewer-1"])
        users = self.client.get("/api/users", params={"role": "viewer"}).json()["users"]
        self.assertEqual([u["id"] for u in users], ["viewer-1"])
        users = self.client.get("/api/users", params={"search": "VIEW"}).json()["users"]
        self.assertEqual([u["id"] for u in users], ["viewer-1"])

    def test_update_role(self):
        response = self.client.patch(
            "/api/users/viewer-1/role", json={"role": "trainer"}
        )
        self.assertEqual(response.json()["role"], "trainer")
        response = self.client.patch("/api/users/nobody/role", json={"role": "admin"})
        self.assertEqual(response.status_code, 404)

    def test_promoted_user_can_sign_in(self):
        self.client.patch("/api/users/viewer-1/role", json={"role": "admin"})
        other = TestClient(self.client.app)
        body = other.post(
            "/api/auth/sign-in",
            json={"email": "viewer@example.com", "password": "secret"},
        ).json()
        self.assertEqual(body["session"]["status"], "authenticated")


class ProductImageApiTests(AdminConsoleApiTestCase):
    def setUp(self):
        super().setUp()
        self.sign_in()

    def test_upload_and_delete(self):
        response = self.client.post(
            "/api/products/prod-1/images",
            files=[("files", ("front.png", PNG, "image/png"))],
        )
        self.assertEqual(response.status_code, 200)
        [url] = response.json()["images"]
        self.assertIn("products/prod-1/", url)
        self.assertEqual(len(get_storage_client().stored_objects), 1)

        response = self.client.delete("/api/products/prod-1/images", params={"url": url})
        self.assertEqual(response.status_code, 204)
        self.assertEqual(get_storage_client().stored_objects, {})

    def test_rejects_unsupported_type(self):
        response = self.client.post(
            "/api/products/prod-1/images",
            files=[("files", ("doc.pdf", b"%PDF", "application/pdf"))],
        )
        self.assertEqual(response.status_code, 400)


class StoreFailureTests(AdminConsoleApiTestCase):
    def test_store_error_maps_to_500(self):
        self.sign_in()
        store = get_document_store()
        with mock.patch.object(store, "query", side_effect=DocumentStoreError("down")):
            response = self.client.get("/api/orders")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"detail": "Document store error"})


if __name__ == "__main__":
    unittest.main()
