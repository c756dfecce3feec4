"""
Tests for authentication, registration/approval and user management.
"""

import unittest

from config import TestingConfig
from salesdesk import create_app
from salesdesk.extensions import db
from salesdesk.models import AuditLog, Region, User

from .base import PASSWORD, BaseTestCase


class TestLogin(BaseTestCase):
    """Login rules"""

    def test_login_and_me(self):
        response = self.login_rep()
        self.assertEqual(response.get_json()["user"]["email"], "rep@example.com")
        self.assertNotIn("password_hash", response.get_json()["user"])

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["id"], self.rep_id)

    def test_wrong_password(self):
        response = self.login("rep@example.com", "wrong-password")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["code"], "invalid_credentials")

    def test_unknown_email(self):
        response = self.login("nobody@example.com")
        self.assertEqual(response.status_code, 401)

    def test_deactivated_account(self):
        self.create_user("gone@example.com", active=False)
        response = self.login("gone@example.com")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["code"], "account_inactive")

    def test_pending_representative(self):
        self.create_user("new@example.com", approved=False)
        response = self.login("new@example.com")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["code"], "account_pending")

    def test_logout(self):
        self.login_rep()
        self.assertEqual(self.logout().status_code, 200)
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

    def test_anonymous_gets_json_401(self):
        response = self.client.get("/api/clients")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["code"], "unauthorized")

    def test_csrf_token_endpoint(self):
        response = self.client.get("/api/auth/csrf-token")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.get_json()["csrf_token"])


class TestRegistration(BaseTestCase):
    """Self-registration and admin approval"""

    def test_register_then_approve(self):
        response = self.client.post(
            "/api/auth/register",
            json={"email": "Nova@Example.com", "password": PASSWORD, "name": "Nova Rep"},
        )
        self.assertEqual(response.status_code, 201)
        user = response.get_json()["user"]
        self.assertEqual(user["email"], "nova@example.com")
        self.assertEqual(user["role"], "representative")
        self.assertFalse(user["approved"])

        self.assertEqual(self.login("nova@example.com").status_code, 403)

        self.login_admin()
        pending = self.client.get("/api/users/pending").get_json()
        self.assertEqual([u["email"] for u in pending], ["nova@example.com"])

        approved = self.client.post(f"/api/users/{user['id']}/approve")
        self.assertTrue(approved.get_json()["approved"])

        self.logout()
        self.assertEqual(self.login("nova@example.com").status_code, 200)

    def test_register_cannot_choose_role(self):
        response = self.client.post(
            "/api/auth/register",
            json={"email": "sneaky@example.com", "password": PASSWORD, "name": "Sneaky", "role": "admin"},
        )
        self.assertEqual(response.get_json()["user"]["role"], "representative")

    def test_register_with_region(self):
        response = self.client.post(
            "/api/auth/register",
            json={"email": "sul@example.com", "password": PASSWORD, "name": "Regional Sul", "create_region": True},
        )
        region_id = response.get_json()["user"]["region_id"]
        self.assertIsNotNone(region_id)
        self.assertEqual(self.db_get(Region, region_id).name, "Regional Sul")

    def test_register_duplicate_email(self):
        response = self.client.post(
            "/api/auth/register",
            json={"email": "rep@example.com", "password": PASSWORD, "name": "Dup"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["code"], "email_taken")

    def test_register_short_password(self):
        response = self.client.post(
            "/api/auth/register",
            json={"email": "short@example.com", "password": "123", "name": "Short"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["code"], "validation_error")

    def test_register_requires_json(self):
        response = self.client.post("/api/auth/register", data="not json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["code"], "invalid_body")


class TestSeedAdmin(unittest.TestCase):
    """First admin bootstrap on an empty database"""

    def setUp(self):
        self.app = create_app(TestingConfig)
        self.client = self.app.test_client()
        with self.app.app_context():
            db.create_all()

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()

    def test_seed_admin_once(self):
        response = self.client.post("/api/auth/seed-admin", json={"email": "root@example.com", "password": PASSWORD})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["user"]["role"], "admin")

        again = self.client.post("/api/auth/seed-admin", json={"email": "x@example.com", "password": PASSWORD})
        self.assertEqual(again.status_code, 409)

        login = self.client.post("/api/auth/login", json={"email": "root@example.com", "password": PASSWORD})
        self.assertEqual(login.status_code, 200)


class TestUserManagement(BaseTestCase):
    """Admin user endpoints"""

    def test_representative_cannot_list_users(self):
        self.login_rep()
        self.assertEqual(self.client.get("/api/users").status_code, 403)

    def test_representatives_list_for_any_user(self):
        self.login_rep()
        reps = self.client.get("/api/users/representatives").get_json()
        self.assertEqual({r["email"] for r in reps}, {"rep@example.com", "other@example.com"})

    def test_create_update_and_deactivate(self):
        self.login_admin()
        created = self.client.post(
            "/api/users",
            json={"email": "carla@example.com", "password": PASSWORD, "name": "Carla"},
        )
        self.assertEqual(created.status_code, 201)
        user_id = created.get_json()["id"]
        self.assertTrue(created.get_json()["approved"])

        updated = self.client.put(f"/api/users/{user_id}", json={"name": "Carla Souza", "password": "novasenha"})
        self.assertEqual(updated.get_json()["name"], "Carla Souza")
        self.assertTrue(self.db_get(User, user_id).check_password("novasenha"))

        toggled = self.client.post(f"/api/users/{user_id}/toggle")
        self.assertFalse(toggled.get_json()["active"])

        deleted = self.client.delete(f"/api/users/{self.rep_id}")
        self.assertEqual(deleted.status_code, 200)
        self.assertFalse(self.db_get(User, self.rep_id).active)
        self.assertIsNotNone(self.db_get(User, self.rep_id))

    def test_admin_cannot_deactivate_self(self):
        self.login_admin()
        response = self.client.delete(f"/api/users/{self.admin_id}")
        self.assertEqual(response.status_code, 400)

    def test_mutations_are_audited(self):
        self.login_admin()
        self.client.post(f"/api/users/{self.rep_id}/toggle")
        with self.app.app_context():
            entry = AuditLog.query.filter_by(entity_type="User", entity_id=self.rep_id).one()
            self.assertEqual(entry.user_id, self.admin_id)
            self.assertNotIn("password_hash", entry.before_data)


if __name__ == "__main__":
    unittest.main()
