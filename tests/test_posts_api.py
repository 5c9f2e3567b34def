import unittest
from datetime import datetime, timedelta, timezone

from campus_forum import db
from campus_forum.models.db_models import Post, PostImage
from tests.test_base import AppTestCase


class TestPostListApi(AppTestCase):
    def test_list_posts_newest_first(self):
        now = datetime.now(timezone.utc)
        older = self._create_db_post(self.user1_id, title="Older", created_at=now - timedelta(hours=1))
        newer = self._create_db_post(self.user2_id, title="Newer", created_at=now)

        response = self.client.get("/api/post")
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual([p["id"] for p in data], [newer.id, older.id])
        self.assertEqual(data[0]["author"]["name"], "testuser2")
        self.assertIn("view_count", data[0])
        self.assertIn("comments_count", data[0])

    def test_filter_by_topic(self):
        study = self._create_db_topic("Study")
        housing = self._create_db_topic("Housing")
        in_study = self._create_db_post(self.user1_id, topic_id=study.id)
        self._create_db_post(self.user1_id, topic_id=housing.id)
        self._create_db_post(self.user2_id)

        response = self.client.get(f"/api/post?topicId={study.id}")
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]["id"], in_study.id)
        self.assertTrue(all(p["topic_id"] == study.id for p in data))

    def test_filter_by_author(self):
        self._create_db_post(self.user1_id)
        by_user2 = self._create_db_post(self.user2_id)

        data = self.client.get(f"/api/post?authorId={self.user2_id}").get_json()
        self.assertEqual([p["id"] for p in data], [by_user2.id])


class TestCreatePostApi(AppTestCase):
    def test_create_post_requires_session(self):
        response = self.client.post("/api/post", json={"content": "Hi"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "Unauthorized")

    def test_create_post_requires_content(self):
        headers = self._auth_headers("test1@example.com")
        response = self.client.post("/api/post", json={"title": "No body"}, headers=headers)
        self.assertEqual(response.status_code, 400)

    def test_create_post_with_images_and_topic(self):
        topic = self._create_db_topic("Campus Life")
        headers = self._auth_headers("test1@example.com")
        response = self.client.post(
            "/api/post",
            json={
                "title": "  ",
                "content": "# Welcome\nFirst post",
                "images": ["/uploads/1.jpg", "/uploads/2.jpg"],
                "topicId": topic.id,
            },
            headers=headers,
        )
        self.assertEqual(response.status_code, 201)
        post_data = response.get_json()["post"]
        self.assertIsNone(post_data["title"])
        self.assertEqual(post_data["images"], ["/uploads/1.jpg", "/uploads/2.jpg"])
        self.assertEqual(post_data["topic"]["id"], topic.id)
        self.assertEqual(post_data["author_id"], self.user1_id)

        with self.app.app_context():
            self.assertEqual(PostImage.query.filter_by(post_id=post_data["id"]).count(), 2)

    def test_create_post_unknown_topic(self):
        headers = self._auth_headers("test1@example.com")
        response = self.client.post(
            "/api/post", json={"content": "Hi", "topicId": 9999}, headers=headers
        )
        self.assertEqual(response.status_code, 404)

    def test_create_post_with_session_cookie_login(self):
        self.login("test2@example.com", "password")
        response = self.client.post("/api/post", json={"content": "From the browser"})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["post"]["author_id"], self.user2_id)

    def test_invalid_token_rejected(self):
        response = self.client.post(
            "/api/post",
            json={"content": "Hi"},
            headers={"Authorization": "Bearer not-a-real-token"},
        )
        self.assertEqual(response.status_code, 401)


class TestUpdateDeletePostApi(AppTestCase):
    def setUp(self):
        super().setUp()
        self.post = self._create_db_post(self.user1_id, title="Original", content="Body")
        self.admin = self._create_db_user("admin", role="admin")

    def test_author_can_update(self):
        response = self.client.put(
            "/api/post",
            json={"id": self.post.id, "title": "Edited", "content": "New body"},
            headers=self._auth_headers("test1@example.com"),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["post"]["content"], "New body")
        with self.app.app_context():
            post = db.session.get(Post, self.post.id)
            self.assertEqual(post.title, "Edited")

    def test_non_author_cannot_update(self):
        response = self.client.put(
            "/api/post",
            json={"id": self.post.id, "content": "Hijacked"},
            headers=self._auth_headers("test2@example.com"),
        )
        self.assertEqual(response.status_code, 403)
        with self.app.app_context():
            self.assertEqual(db.session.get(Post, self.post.id).content, "Body")

    def test_admin_can_update(self):
        response = self.client.put(
            "/api/post",
            json={"id": self.post.id, "content": "Moderated"},
            headers=self._auth_headers("admin@example.com"),
        )
        self.assertEqual(response.status_code, 200)

    def test_update_missing_post(self):
        response = self.client.put(
            "/api/post",
            json={"id": 9999, "content": "Nope"},
            headers=self._auth_headers("test1@example.com"),
        )
        self.assertEqual(response.status_code, 404)

    def test_update_requires_id_and_content(self):
        response = self.client.put(
            "/api/post",
            json={"id": self.post.id},
            headers=self._auth_headers("test1@example.com"),
        )
        self.assertEqual(response.status_code, 400)

    def test_non_author_cannot_delete(self):
        response = self.client.delete(
            "/api/post",
            json={"id": self.post.id},
            headers=self._auth_headers("test3@example.com"),
        )
        self.assertEqual(response.status_code, 403)
        with self.app.app_context():
            self.assertIsNotNone(db.session.get(Post, self.post.id))

    def test_author_can_delete(self):
        self._create_db_comment(self.user2_id, self.post.id)
        response = self.client.delete(
            "/api/post",
            json={"id": self.post.id},
            headers=self._auth_headers("test1@example.com"),
        )
        self.assertEqual(response.status_code, 200)
        with self.app.app_context():
            self.assertIsNone(db.session.get(Post, self.post.id))

    def test_admin_can_delete(self):
        response = self.client.delete(
            "/api/post",
            json={"id": self.post.id},
            headers=self._auth_headers("admin@example.com"),
        )
        self.assertEqual(response.status_code, 200)

    def test_delete_requires_id(self):
        response = self.client.delete(
            "/api/post", json={}, headers=self._auth_headers("test1@example.com")
        )
        self.assertEqual(response.status_code, 400)


class TestPostDetailApi(AppTestCase):
    def test_detail_includes_threaded_comments(self):
        post = self._create_db_post(self.user1_id)
        top = self._create_db_comment(self.user2_id, post.id, content="Top level")
        self._create_db_comment(self.user3_id, post.id, content="Reply", parent_id=top.id)

        response = self.client.get(f"/api/post/{post.id}")
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(len(data["comments"]), 1)
        self.assertEqual(data["comments"][0]["content"], "Top level")
        self.assertEqual(data["comments"][0]["replies"][0]["content"], "Reply")

    def test_detail_missing_post(self):
        response = self.client.get("/api/post/9999")
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
