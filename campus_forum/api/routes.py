from flask_restful import Resource, reqparse
from flask import request, g, current_app, jsonify
from flask_jwt_extended import set_access_cookies, unset_jwt_cookies
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from sqlalchemy.exc import IntegrityError

from ..core.auth import (
    admin_required,
    authenticate,
    get_session_user,
    issue_access_token,
    session_required,
)
from ..services import notifications_service, posts_service, users_service
from ..services.uploads_service import UploadError, save_image_upload
from ..services.users_service import ProfileError
from ..services.view_tracker import apply_view_cookie, track_view
from ..models.db_models import (
    Comment,
    Notification,
    Post,
    Topic,
    User,
    db,
)


def _json_body():
    return request.get_json(silent=True) or {}


def _to_int(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _internal_error(action, e):
    db.session.rollback()
    current_app.logger.error(f"Error {action}: {e}")
    return {"error": "Internal server error"}, 500


class PostListResource(Resource):
    def get(self):
        parser = reqparse.RequestParser()
        parser.add_argument("topicId", type=int, location="args")
        parser.add_argument("authorId", type=int, location="args")
        args = parser.parse_args()

        posts = posts_service.get_posts(
            topic_id=args["topicId"], author_id=args["authorId"]
        )
        return [post.to_dict() for post in posts], 200

    @session_required
    def post(self):
        user = g.session_user
        data = _json_body()
        content = data.get("content")
        if not content or not str(content).strip():
            return {"error": "Content is required"}, 400

        images = data.get("images") or []
        if not isinstance(images, list) or not all(
            isinstance(url, str) for url in images
        ):
            return {"error": "Images must be a list of URLs"}, 400

        topic_id = None
        if data.get("topicId") not in (None, ""):
            topic_id = _to_int(data.get("topicId"))
            if topic_id is None or db.session.get(Topic, topic_id) is None:
                return {"error": "Topic not found"}, 404

        title = data.get("title")
        try:
            post = posts_service.create_post(
                content=content,
                author_id=user.id,
                title=title.strip() if isinstance(title, str) else None,
                images=images,
                topic_id=topic_id,
            )
        except Exception as e:
            return _internal_error("creating post", e)

        current_app.logger.info(f"User {user.id} created post {post.id}")
        return {"message": "Post created successfully", "post": post.to_dict()}, 201

    @session_required
    def put(self):
        user = g.session_user
        data = _json_body()
        post_id = _to_int(data.get("id"))
        content = data.get("content")
        if post_id is None or not content or not str(content).strip():
            return {"error": "Post ID and content are required"}, 400

        post = db.session.get(Post, post_id)
        if not post:
            return {"error": "Post not found"}, 404
        if not user.can_modify(post.author_id):
            return {"error": "Forbidden"}, 403

        title = data.get("title", post.title)
        try:
            posts_service.update_post(
                post,
                content=content,
                title=title.strip() if isinstance(title, str) else None,
            )
        except Exception as e:
            return _internal_error(f"updating post {post_id}", e)

        current_app.logger.info(f"User {user.id} updated post {post.id}")
        return {"message": "Post updated successfully", "post": post.to_dict()}, 200

    @session_required
    def delete(self):
        user = g.session_user
        post_id = _to_int(_json_body().get("id"))
        if post_id is None:
            return {"error": "Post ID is required"}, 400

        post = db.session.get(Post, post_id)
        if not post:
            return {"error": "Post not found"}, 404
        if not user.can_modify(post.author_id):
            return {"error": "Forbidden"}, 403

        try:
            posts_service.delete_post(post)
        except Exception as e:
            return _internal_error(f"deleting post {post_id}", e)

        current_app.logger.info(f"User {user.id} deleted post {post_id}")
        return {"message": "Post deleted successfully"}, 200


class PostResource(Resource):
    def get(self, post_id):
        post = posts_service.get_post_by_id(post_id)
        if not post:
            return {"error": "Post not found"}, 404

        cookie = track_view(post.id)
        if cookie:
            db.session.refresh(post)
        response = jsonify(posts_service.post_detail_dict(post))
        return apply_view_cookie(response, cookie)


class CommentResource(Resource):
    @session_required
    def post(self):
        user = g.session_user
        data = _json_body()
        content = data.get("content")
        post_id = _to_int(data.get("postId"))
        if not content or not str(content).strip() or post_id is None:
            return {"error": "Content and post ID are required"}, 400

        post = db.session.get(Post, post_id)
        if not post:
            return {"error": "Post not found"}, 404

        replied_to = None
        if data.get("parentId") not in (None, ""):
            replied_to = posts_service.find_reply_target(
                post, _to_int(data.get("parentId"))
            )
            if replied_to is None:
                return {"error": "Invalid parent comment"}, 400

        try:
            comment = posts_service.create_comment(post, user.id, content, replied_to)
        except Exception as e:
            return _internal_error("creating comment", e)

        current_app.logger.info(
            f"User {user.id} commented on post {post.id} (comment {comment.id})"
        )
        return {
            "message": "Comment created successfully",
            "comment": comment.to_dict(),
        }, 201

    @session_required
    def delete(self):
        user = g.session_user
        comment_id = _to_int(_json_body().get("id"))
        if comment_id is None:
            return {"error": "Comment ID is required"}, 400

        comment = db.session.get(Comment, comment_id)
        if not comment:
            return {"error": "Comment not found"}, 404
        if not user.can_modify(comment.author_id):
            return {"error": "Forbidden"}, 403

        try:
            db.session.delete(comment)
            db.session.commit()
        except Exception as e:
            return _internal_error(f"deleting comment {comment_id}", e)

        current_app.logger.info(f"User {user.id} deleted comment {comment_id}")
        return {"message": "Comment deleted successfully"}, 200


class LikeResource(Resource):
    @session_required
    def post(self):
        user = g.session_user
        data = _json_body()
        target_type = data.get("targetType")
        target_id = _to_int(data.get("targetId"))
        if not target_type or target_id is None:
            return {"error": "Target type and ID are required"}, 400
        if target_type not in ("post", "comment"):
            return {"error": "Invalid target type"}, 400

        target = notifications_service.find_target(target_type, target_id)
        if not target:
            return {"error": f"{target_type.capitalize()} not found"}, 404

        try:
            if target_type == "post":
                liked, like, likes_count = notifications_service.toggle_post_like(
                    user, target
                )
            else:
                liked, like, likes_count = notifications_service.toggle_comment_like(
                    user, target
                )
        except IntegrityError as e:
            db.session.rollback()
            current_app.logger.warning(
                f"Concurrent like toggle by user {user.id} on {target_type} {target_id}: {e.orig}"
            )
            return {"error": "Conflict"}, 409
        except Exception as e:
            return _internal_error(f"toggling like on {target_type} {target_id}", e)

        if not liked:
            return {
                "message": "Like removed successfully",
                "liked": False,
                "likes_count": likes_count,
            }, 200
        return {
            "message": "Liked successfully",
            "liked": True,
            "like": like.to_dict(),
            "likes_count": likes_count,
        }, 201


class RepostResource(Resource):
    @session_required
    def post(self):
        user = g.session_user
        post_id = _to_int(_json_body().get("postId"))
        if post_id is None:
            return {"error": "Post ID is required"}, 400

        post = db.session.get(Post, post_id)
        if not post:
            return {"error": "Post not found"}, 404

        try:
            reposted, repost = posts_service.toggle_repost(user, post)
        except IntegrityError as e:
            db.session.rollback()
            current_app.logger.warning(
                f"Concurrent repost toggle by user {user.id} on post {post.id}: {e.orig}"
            )
            return {"error": "Conflict"}, 409
        except Exception as e:
            return _internal_error(f"toggling repost on post {post_id}", e)

        if not reposted:
            current_app.logger.info(f"User {user.id} removed repost of post {post.id}")
            return {"message": "Repost removed", "reposted": False}, 200

        current_app.logger.info(f"User {user.id} reposted post {post.id}")
        return {
            "message": "Reposted successfully",
            "reposted": True,
            "repost": repost.to_dict(),
        }, 201


class TopicResource(Resource):
    def get(self):
        parser = reqparse.RequestParser()
        parser.add_argument("id", type=int, location="args")
        parser.add_argument("q", type=str, location="args")
        args = parser.parse_args()

        if args["id"] is not None:
            topic = db.session.get(Topic, args["id"])
            if not topic:
                return {"error": "Topic not found"}, 404
            return topic.to_dict(), 200

        topics = posts_service.search_topics(query_text=args["q"])
        return [topic.to_dict() for topic in topics], 200

    @session_required
    def post(self):
        user = g.session_user
        data = _json_body()
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            return {"error": "Topic name is required"}, 400
        name = name.strip()

        existing = Topic.query.filter_by(name=name).first()
        if existing:
            return existing.to_dict(), 200

        topic = Topic(
            name=name,
            description=data.get("description"),
            icon=data.get("icon"),
            creator_id=user.id,
        )
        try:
            db.session.add(topic)
            db.session.commit()
        except Exception as e:
            return _internal_error("creating topic", e)

        current_app.logger.info(f"User {user.id} created topic '{topic.name}'")
        return topic.to_dict(), 201


class NotificationListResource(Resource):
    @session_required
    def get(self):
        notifications = notifications_service.get_recent_notifications(g.session_user)
        return [notification.to_dict() for notification in notifications], 200


class NotificationUnreadCountResource(Resource):
    def get(self):
        try:
            user = get_session_user()
        except (JWTExtendedException, PyJWTError) as e:
            current_app.logger.debug(f"Unusable token on unread count: {e}")
            user = None
        if user is None:
            return {"count": 0}, 200
        return {"count": notifications_service.get_unread_count(user)}, 200


class NotificationReadAllResource(Resource):
    @session_required
    def post(self):
        try:
            updated = notifications_service.mark_all_read(g.session_user)
        except Exception as e:
            return _internal_error("marking notifications read", e)
        return {"message": "All notifications marked as read", "updated": updated}, 200


class NotificationResource(Resource):
    def _get_owned(self, notification_id):
        notification = db.session.get(Notification, notification_id)
        if not notification:
            return None, ({"error": "Notification not found"}, 404)
        if notification.receiver_id != g.session_user.id:
            return None, ({"error": "Forbidden"}, 403)
        return notification, None

    @session_required
    def patch(self, notification_id):
        notification, error = self._get_owned(notification_id)
        if error:
            return error
        try:
            notification.is_read = True
            db.session.commit()
        except Exception as e:
            return _internal_error(f"updating notification {notification_id}", e)
        return notification.to_dict(), 200

    @session_required
    def delete(self, notification_id):
        notification, error = self._get_owned(notification_id)
        if error:
            return error
        try:
            db.session.delete(notification)
            db.session.commit()
        except Exception as e:
            return _internal_error(f"deleting notification {notification_id}", e)
        return {"message": "Notification deleted"}, 200


class UploadResource(Resource):
    @session_required
    def post(self):
        try:
            url = save_image_upload(request.files.get("file"))
        except UploadError as e:
            return {"error": str(e)}, 400
        except OSError as e:
            current_app.logger.error(f"Error saving upload: {e}")
            return {"error": "Error saving file"}, 500
        return {"url": url}, 200


class AdminDataResource(Resource):
    @admin_required
    def get(self):
        users, posts = users_service.admin_overview()
        return {
            "users": [user.to_dict() for user in users],
            "posts": [
                {
                    "id": post.id,
                    "title": post.title,
                    "content": post.content,
                    "view_count": post.view_count,
                    "created_at": post.to_dict()["created_at"],
                    "author": {
                        "id": post.author.id,
                        "name": post.author.name,
                        "email": post.author.email,
                    },
                }
                for post in posts
            ],
        }, 200


class AdminBanUserResource(Resource):
    @admin_required
    def post(self):
        admin = g.session_user
        data = _json_body()
        user_id = _to_int(data.get("userId"))
        if user_id is None:
            return {"error": "User ID is required"}, 400
        banned = data.get("banned", True)
        if not isinstance(banned, bool):
            return {"error": "Banned must be true or false"}, 400

        user = db.session.get(User, user_id)
        if not user:
            return {"error": "User not found"}, 404
        if user.id == admin.id:
            return {"error": "You cannot ban yourself"}, 400

        try:
            users_service.set_banned(user, banned)
        except Exception as e:
            return _internal_error(f"updating ban for user {user_id}", e)

        action = "banned" if banned else "unbanned"
        current_app.logger.info(f"Admin {admin.id} {action} user {user.id}")
        return {"message": f"User {action} successfully", "user": user.to_dict()}, 200


class RegisterResource(Resource):
    def post(self):
        data = _json_body()
        email = (data.get("email") or "").strip().lower()
        password = data.get("password") or ""
        if not email or not password:
            return {"error": "Email and password are required"}, 400
        if "@" not in email:
            return {"error": "Invalid email address"}, 400
        if len(password) < 6:
            return {"error": "Password must be at least 6 characters"}, 400
        if User.query.filter_by(email=email).first():
            return {"error": "User already exists"}, 409

        name = (data.get("name") or "").strip() or email.split("@", 1)[0]
        user = User(name=name, email=email)
        user.set_password(password)
        try:
            db.session.add(user)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return {"error": "User already exists"}, 409
        except Exception as e:
            return _internal_error("registering user", e)

        current_app.logger.info(f"Registered user {user.id}")
        return {"message": "User created successfully", "user": user.to_dict()}, 201


class ApiLoginResource(Resource):
    def post(self):
        data = _json_body()
        email = (data.get("email") or "").strip().lower()
        password = data.get("password")

        if not email or not password:
            return {"error": "Email and password are required"}, 400

        user = authenticate(email, password)
        if user is None:
            return {"error": "Invalid credentials"}, 401

        access_token = issue_access_token(user)
        response = jsonify({"access_token": access_token, "user": user.to_dict()})
        set_access_cookies(response, access_token)
        return response


class ApiLogoutResource(Resource):
    def post(self):
        response = jsonify({"message": "Logged out"})
        unset_jwt_cookies(response)
        return response


class CurrentUserResource(Resource):
    @session_required
    def get(self):
        return g.session_user.to_dict(), 200


class CompleteProfileResource(Resource):
    @session_required
    def post(self):
        user = g.session_user
        data = _json_body()

        changes = {}
        for key, field in (("name", "name"), ("postViewMode", "post_view_mode")):
            if data.get(key) is not None:
                changes[field] = data[key]
        for field in ("avatar", "bio"):
            if field in data:
                changes[field] = data[field]

        try:
            users_service.update_profile(user, changes)
        except ProfileError as e:
            db.session.rollback()
            return {"error": str(e)}, 400
        except Exception as e:
            return _internal_error(f"updating profile of user {user.id}", e)

        access_token = issue_access_token(user)
        response = jsonify({"user": user.to_dict(), "access_token": access_token})
        set_access_cookies(response, access_token)
        return response


class DeleteAccountResource(Resource):
    @session_required
    def delete(self):
        user = db.session.get(User, g.session_user.id)
        if not user:
            return {"error": "User not found"}, 404

        user_id = user.id
        try:
            users_service.delete_account(user)
        except Exception as e:
            return _internal_error(f"deleting account {user_id}", e)

        current_app.logger.info(f"Deleted account {user_id}")
        response = jsonify({"message": "Account deleted successfully"})
        unset_jwt_cookies(response)
        return response


class UserResource(Resource):
    def get(self, user_id):
        user = db.session.get(User, user_id)
        if not user:
            return {"error": "User not found"}, 404

        profile = user.to_summary()
        profile.update(
            {
                "bio": user.bio,
                "role": user.role,
                "banned": user.banned,
                "created_at": user.to_dict()["created_at"],
                "stats": user.get_stats(),
                "posts": [
                    post.to_dict()
                    for post in posts_service.get_posts(author_id=user.id)
                ],
            }
        )
        return profile, 200


class SearchResource(Resource):
    def get(self):
        parser = reqparse.RequestParser()
        parser.add_argument("q", type=str, default="", location="args")
        query_text = (parser.parse_args()["q"] or "").strip()
        if not query_text:
            return {"posts": [], "users": []}, 200

        posts = posts_service.search_posts(query_text)
        users = posts_service.search_users(query_text)
        return {
            "posts": [post.to_dict() for post in posts],
            "users": [
                dict(user.to_summary(), posts_count=len(user.posts)) for user in users
            ],
        }, 200
