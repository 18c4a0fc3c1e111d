from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.test import APITestCase

from apps.notifications.models import Notification

User = get_user_model()


class NotificationReadTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="customer", password="customer123")
        self.other = User.objects.create_user(username="other", password="other123")
        self.mine = Notification.objects.create(user=self.customer, event="order_status_changed", title="Shipped")
        self.theirs = Notification.objects.create(user=self.other, event="order_status_changed", title="Ready")
        self.back_office = Notification.objects.create(user=None, event="order_created", title="New order")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_mark_one_read(self):
        self.auth_as("customer", "customer123")
        self.assertEqual(self.client.get("/api/v1/notifications/unread-count/").data["count"], 1)

        response = self.client.put(f"/api/v1/notifications/{self.mine.pk}/read/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["is_read"])

        response = self.client.get("/api/v1/notifications/?unread=1")
        self.assertEqual(response.data["count"], 0)
        self.assertEqual(self.client.get("/api/v1/notifications/unread-count/").data["count"], 0)

    def test_cannot_mark_someone_elses_notification(self):
        self.auth_as("customer", "customer123")
        for target in (self.theirs, self.back_office):
            response = self.client.put(f"/api/v1/notifications/{target.pk}/read/")
            self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
            self.assertEqual(response.data["code"], "not_found")
        self.assertFalse(Notification.objects.filter(is_read=True).exists())

    def test_read_all_stays_inside_the_inbox(self):
        self.auth_as("admin", "admin123")
        Notification.objects.create(user=self.admin, event="account_blocked", title="Blocked")
        self.assertEqual(self.client.get("/api/v1/notifications/unread-count/").data["count"], 2)

        response = self.client.post("/api/v1/notifications/read-all/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["updated"], 2)

        self.back_office.refresh_from_db()
        self.mine.refresh_from_db()
        self.assertTrue(self.back_office.is_read)
        self.assertFalse(self.mine.is_read)
        self.assertEqual(self.client.get("/api/v1/notifications/?unread=true").data["count"], 0)

    def test_anonymous_is_rejected(self):
        response = self.client.get("/api/v1/notifications/unread-count/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
