import unittest
from unittest.mock import patch

from itsdangerous import TimestampSigner
from sqlalchemy.exc import OperationalError

from campus_forum import db
from campus_forum.models.db_models import Post
from campus_forum.services.view_tracker import VIEW_COOKIE_SALT, view_cookie_name
from tests.test_base import AppTestCase


class TestViewTracking(AppTestCase):
    def setUp(self):
        super().setUp()
        self.post = self._create_db_post(self.user1_id, content="# Heading\nBody")
        self.cookie_name = view_cookie_name(self.post.id)

    def _view_count(self):
        with self.app.app_context():
            return db.session.get(Post, self.post.id).view_count

    def test_repeated_views_count_once(self):
        for _ in range(3):
            response = self.client.get(f"/post/{self.post.id}")
            self.assertEqual(response.status_code, 200)
        self.assertEqual(self._view_count(), 1)

    def test_view_cookie_attributes(self):
        response = self.client.get(f"/post/{self.post.id}")
        set_cookie = response.headers.get("Set-Cookie", "")
        self.assertIn(f"{self.cookie_name}=", set_cookie)
        self.assertIn("HttpOnly", set_cookie)
        self.assertIn("Max-Age=3600", set_cookie)
        self.assertIn("Path=/", set_cookie)
        self.assertIn("SameSite=Lax", set_cookie)

    def test_counts_again_after_cookie_removed(self):
        self.client.get(f"/post/{self.post.id}")
        self.client.delete_cookie(self.cookie_name)
        self.client.get(f"/post/{self.post.id}")
        self.assertEqual(self._view_count(), 2)

    def test_counts_again_after_cooldown(self):
        self.client.get(f"/post/{self.post.id}")
        with patch.dict(self.app.config, {"VIEW_COOLDOWN_SECONDS": -1}):
            self.client.get(f"/post/{self.post.id}")
        self.assertEqual(self._view_count(), 2)

    def test_forged_cookie_is_ignored(self):
        self.client.set_cookie(self.cookie_name, "forged-value")
        self.client.get(f"/post/{self.post.id}")
        self.assertEqual(self._view_count(), 1)

    def test_cookie_for_another_post_does_not_apply(self):
        other = self._create_db_post(self.user2_id)
        signer = TimestampSigner(self.app.config["SECRET_KEY"], salt=VIEW_COOKIE_SALT)
        self.client.set_cookie(self.cookie_name, signer.sign(str(other.id)).decode())
        self.client.get(f"/post/{self.post.id}")
        self.assertEqual(self._view_count(), 1)

    def test_api_detail_counts_views(self):
        response = self.client.get(f"/api/post/{self.post.id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["view_count"], 1)
        response = self.client.get(f"/api/post/{self.post.id}")
        self.assertEqual(response.get_json()["view_count"], 1)

    def test_separate_visitors_each_count(self):
        self.client.get(f"/post/{self.post.id}")
        self.app.test_client().get(f"/post/{self.post.id}")
        self.assertEqual(self._view_count(), 2)

    def test_increment_failure_still_renders_page(self):
        with patch(
            "campus_forum.services.view_tracker.db.session.execute",
            side_effect=OperationalError("UPDATE post", {}, Exception("database is locked")),
        ):
            response = self.client.get(f"/post/{self.post.id}")
        self.assertEqual(response.status_code, 200)
        self.assertNotIn(self.cookie_name, response.headers.get("Set-Cookie", ""))
        self.assertEqual(self._view_count(), 0)


if __name__ == "__main__":
    unittest.main()
