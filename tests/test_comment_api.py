import unittest

from campus_forum import db
from campus_forum.models.db_models import Comment, Notification
from tests.test_base import AppTestCase


class TestCommentAPI(AppTestCase):
    def setUp(self):
        super().setUp()
        self.post = self._create_db_post(self.user1_id, title="Discussion")

    def test_create_comment_notifies_post_author(self):
        response = self.client.post(
            "/api/comment",
            json={"content": "Nice post", "postId": self.post.id},
            headers=self._auth_headers("test2@example.com"),
        )
        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertEqual(body["message"], "Comment created successfully")
        data = body["comment"]
        self.assertEqual(data["content"], "Nice post")
        self.assertIsNone(data["parent_id"])

        with self.app.app_context():
            notifications = Notification.query.filter_by(receiver_id=self.user1_id).all()
            self.assertEqual(len(notifications), 1)
            self.assertEqual(notifications[0].type, "REPLY_POST")
            self.assertEqual(notifications[0].sender_id, self.user2_id)
            self.assertEqual(notifications[0].comment_id, data["id"])

    def test_comment_on_own_post_does_not_notify(self):
        response = self.client.post(
            "/api/comment",
            json={"content": "Bumping", "postId": self.post.id},
            headers=self._auth_headers("test1@example.com"),
        )
        self.assertEqual(response.status_code, 201)
        with self.app.app_context():
            self.assertEqual(Notification.query.count(), 0)

    def test_reply_notifies_parent_author(self):
        parent = self._create_db_comment(self.user2_id, self.post.id)
        response = self.client.post(
            "/api/comment",
            json={"content": "Agreed", "postId": self.post.id, "parentId": parent.id},
            headers=self._auth_headers("test3@example.com"),
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["comment"]["parent_id"], parent.id)

        with self.app.app_context():
            notification = Notification.query.filter_by(receiver_id=self.user2_id).one()
            self.assertEqual(notification.type, "REPLY_COMMENT")
            self.assertEqual(notification.post_id, self.post.id)
            self.assertEqual(
                Notification.query.filter_by(receiver_id=self.user1_id).count(), 0
            )

    def test_reply_to_reply_joins_top_level_thread(self):
        top = self._create_db_comment(self.user2_id, self.post.id)
        reply = self._create_db_comment(self.user3_id, self.post.id, parent_id=top.id)

        response = self.client.post(
            "/api/comment",
            json={"content": "Nested", "postId": self.post.id, "parentId": reply.id},
            headers=self._auth_headers("test1@example.com"),
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["comment"]["parent_id"], top.id)

        with self.app.app_context():
            notification = Notification.query.filter_by(receiver_id=self.user3_id).one()
            self.assertEqual(notification.type, "REPLY_COMMENT")

    def test_parent_from_another_post_rejected(self):
        other_post = self._create_db_post(self.user2_id)
        foreign_comment = self._create_db_comment(self.user2_id, other_post.id)
        response = self.client.post(
            "/api/comment",
            json={"content": "Wrong thread", "postId": self.post.id, "parentId": foreign_comment.id},
            headers=self._auth_headers("test3@example.com"),
        )
        self.assertEqual(response.status_code, 400)
        with self.app.app_context():
            self.assertEqual(Comment.query.filter_by(post_id=self.post.id).count(), 0)

    def test_missing_fields(self):
        headers = self._auth_headers("test2@example.com")
        response = self.client.post("/api/comment", json={"postId": self.post.id}, headers=headers)
        self.assertEqual(response.status_code, 400)
        response = self.client.post("/api/comment", json={"content": "Hi"}, headers=headers)
        self.assertEqual(response.status_code, 400)

    def test_missing_post(self):
        response = self.client.post(
            "/api/comment",
            json={"content": "Hi", "postId": 9999},
            headers=self._auth_headers("test2@example.com"),
        )
        self.assertEqual(response.status_code, 404)

    def test_requires_session(self):
        response = self.client.post(
            "/api/comment", json={"content": "Hi", "postId": self.post.id}
        )
        self.assertEqual(response.status_code, 401)

    def test_delete_own_comment_removes_replies(self):
        comment = self._create_db_comment(self.user2_id, self.post.id)
        self._create_db_comment(self.user3_id, self.post.id, parent_id=comment.id)

        response = self.client.delete(
            "/api/comment",
            json={"id": comment.id},
            headers=self._auth_headers("test2@example.com"),
        )
        self.assertEqual(response.status_code, 200)
        with self.app.app_context():
            self.assertEqual(Comment.query.filter_by(post_id=self.post.id).count(), 0)

    def test_delete_other_users_comment_forbidden(self):
        comment = self._create_db_comment(self.user2_id, self.post.id)
        response = self.client.delete(
            "/api/comment",
            json={"id": comment.id},
            headers=self._auth_headers("test3@example.com"),
        )
        self.assertEqual(response.status_code, 403)
        with self.app.app_context():
            self.assertIsNotNone(db.session.get(Comment, comment.id))

    def test_admin_can_delete_comment(self):
        self._create_db_user("admin", role="admin")
        comment = self._create_db_comment(self.user2_id, self.post.id)
        response = self.client.delete(
            "/api/comment",
            json={"id": comment.id},
            headers=self._auth_headers("admin@example.com"),
        )
        self.assertEqual(response.status_code, 200)

    def test_delete_missing_comment(self):
        response = self.client.delete(
            "/api/comment",
            json={"id": 9999},
            headers=self._auth_headers("test2@example.com"),
        )
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
