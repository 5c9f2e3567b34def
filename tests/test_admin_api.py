import unittest

from campus_forum import db
from campus_forum.models.db_models import User
from tests.test_base import AppTestCase


class TestAdminAPI(AppTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self._create_db_user("admin", role="admin")
        self.admin_headers = self._auth_headers("admin@example.com")

    def test_admin_data(self):
        self._create_db_post(self.user1_id, title="Listed")
        response = self.client.get("/api/admin/data", headers=self.admin_headers)
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(len(data["users"]), 4)
        self.assertEqual(data["users"][0]["id"], self.admin.id)
        self.assertEqual(data["posts"][0]["title"], "Listed")
        self.assertEqual(data["posts"][0]["author"]["email"], "test1@example.com")

    def test_admin_data_forbidden_for_users(self):
        response = self.client.get(
            "/api/admin/data", headers=self._auth_headers("test1@example.com")
        )
        self.assertEqual(response.status_code, 403)

    def test_admin_data_requires_session(self):
        self.assertEqual(self.client.get("/api/admin/data").status_code, 401)

    def test_role_is_read_from_database(self):
        headers = self._auth_headers("test2@example.com")
        with self.app.app_context():
            db.session.get(User, self.user2_id).role = "admin"
            db.session.commit()
        response = self.client.get("/api/admin/data", headers=headers)
        self.assertEqual(response.status_code, 200)

    def test_ban_and_unban(self):
        response = self.client.post(
            "/api/admin/user/ban",
            json={"userId": self.user2_id, "banned": True},
            headers=self.admin_headers,
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.get_json()["user"]["banned"])

        login = self.client.post(
            "/api/login", json={"email": "test2@example.com", "password": "password"}
        )
        self.assertEqual(login.status_code, 401)

        response = self.client.post(
            "/api/admin/user/ban",
            json={"userId": self.user2_id, "banned": False},
            headers=self.admin_headers,
        )
        self.assertEqual(response.status_code, 200)
        with self.app.app_context():
            self.assertFalse(db.session.get(User, self.user2_id).banned)

    def test_banned_users_token_stops_working(self):
        headers = self._auth_headers("test2@example.com")
        self.client.post(
            "/api/admin/user/ban",
            json={"userId": self.user2_id, "banned": True},
            headers=self.admin_headers,
        )
        response = self.client.post("/api/post", json={"content": "Still here?"}, headers=headers)
        self.assertEqual(response.status_code, 401)

    def test_ban_validation(self):
        response = self.client.post(
            "/api/admin/user/ban", json={"banned": True}, headers=self.admin_headers
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/admin/user/ban", json={"userId": 9999, "banned": True}, headers=self.admin_headers
        )
        self.assertEqual(response.status_code, 404)

    def test_ban_flag_must_be_boolean(self):
        for value in ("false", "true", 0, 1, None):
            response = self.client.post(
                "/api/admin/user/ban",
                json={"userId": self.user2_id, "banned": value},
                headers=self.admin_headers,
            )
            self.assertEqual(response.status_code, 400, value)
        with self.app.app_context():
            self.assertFalse(db.session.get(User, self.user2_id).banned)

    def test_ban_flag_defaults_to_true(self):
        response = self.client.post(
            "/api/admin/user/ban", json={"userId": self.user2_id}, headers=self.admin_headers
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.get_json()["user"]["banned"])

    def test_admin_cannot_ban_self(self):
        response = self.client.post(
            "/api/admin/user/ban",
            json={"userId": self.admin.id, "banned": True},
            headers=self.admin_headers,
        )
        self.assertEqual(response.status_code, 400)

    def test_ban_forbidden_for_users(self):
        response = self.client.post(
            "/api/admin/user/ban",
            json={"userId": self.user3_id, "banned": True},
            headers=self._auth_headers("test1@example.com"),
        )
        self.assertEqual(response.status_code, 403)


if __name__ == "__main__":
    unittest.main()
