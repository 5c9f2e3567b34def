from datetime import datetime, timezone

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .. import db

POST_VIEW_MODES = ("both", "title", "content", "titleAndContent")
NOTIFICATION_TYPES = ("REPLY_POST", "REPLY_COMMENT", "LIKE_POST", "LIKE_COMMENT")


def _utcnow():
    return datetime.now(timezone.utc)


def _isoformat(value):
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), nullable=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="user")
    banned = db.Column(db.Boolean, nullable=False, default=False)
    bio = db.Column(db.Text, nullable=True)
    avatar = db.Column(db.String(255), nullable=True)
    post_view_mode = db.Column(db.String(20), nullable=False, default="both")
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # Rows below are removed by the ON DELETE CASCADE foreign keys.
    posts = db.relationship(
        "Post", back_populates="author", lazy=True, passive_deletes="all"
    )
    comments = db.relationship(
        "Comment", back_populates="author", lazy=True, passive_deletes="all"
    )
    post_likes = db.relationship(
        "PostLike", back_populates="user", lazy=True, passive_deletes="all"
    )
    comment_likes = db.relationship(
        "CommentLike", back_populates="user", lazy=True, passive_deletes="all"
    )
    reposts = db.relationship(
        "Repost", back_populates="user", lazy=True, passive_deletes="all"
    )
    received_notifications = db.relationship(
        "Notification",
        foreign_keys="Notification.receiver_id",
        back_populates="receiver",
        lazy="dynamic",
        passive_deletes="all",
    )
    sent_notifications = db.relationship(
        "Notification",
        foreign_keys="Notification.sender_id",
        back_populates="sender",
        lazy="dynamic",
        passive_deletes="all",
    )
    created_topics = db.relationship(
        "Topic", back_populates="creator", lazy=True, passive_deletes="all"
    )

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def display_name(self):
        if self.name:
            return self.name
        return self.email.split("@", 1)[0] if self.email else "Anonymous"

    def can_modify(self, resource_author_id):
        """Authors may change their own content; admins may change anything."""
        return self.id == resource_author_id or self.is_admin

    def __repr__(self):
        return f"<User {self.email}>"

    def to_summary(self):
        return {"id": self.id, "name": self.name, "avatar": self.avatar}

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "banned": self.banned,
            "bio": self.bio,
            "avatar": self.avatar,
            "post_view_mode": self.post_view_mode,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    def get_stats(self):
        likes_received_count = 0
        reposts_received_count = 0
        for post in self.posts:
            likes_received_count += len(post.likes)
            reposts_received_count += len(post.reposts)

        return {
            "posts_count": len(self.posts),
            "comments_count": len(self.comments),
            "likes_received_count": likes_received_count,
            "reposts_count": len(self.reposts),
            "reposts_received_count": reposts_received_count,
            "join_date": _isoformat(self.created_at),
        }


class Topic(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    icon = db.Column(db.String(255), nullable=True)
    creator_id = db.Column(
        db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True
    )
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    creator = db.relationship("User", back_populates="created_topics")
    posts = db.relationship(
        "Post", back_populates="topic", lazy="dynamic", passive_deletes="all"
    )

    def __repr__(self):
        return f"<Topic '{self.name}'>"

    def to_summary(self):
        return {"id": self.id, "name": self.name}

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "creator_id": self.creator_id,
            "created_at": _isoformat(self.created_at),
            "posts_count": self.posts.count(),
        }


class Post(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=True)
    content = db.Column(db.Text, nullable=False)
    view_count = db.Column(db.Integer, nullable=False, default=0)
    author_id = db.Column(
        db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False
    )
    topic_id = db.Column(
        db.Integer, db.ForeignKey("topic.id", ondelete="SET NULL"), nullable=True
    )
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    author = db.relationship("User", back_populates="posts")
    topic = db.relationship("Topic", back_populates="posts")
    images = db.relationship(
        "PostImage",
        back_populates="post",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PostImage.position",
    )
    comments = db.relationship(
        "Comment",
        back_populates="post",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    likes = db.relationship(
        "PostLike",
        back_populates="post",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    reposts = db.relationship(
        "Repost",
        back_populates="post",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Post {self.id} by User {self.author_id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "view_count": self.view_count,
            "author_id": self.author_id,
            "author": self.author.to_summary() if self.author else None,
            "topic_id": self.topic_id,
            "topic": self.topic.to_summary() if self.topic else None,
            "images": [image.url for image in self.images],
            "likes": [like.user_id for like in self.likes],
            "reposts": [repost.user_id for repost in self.reposts],
            "comments_count": len(self.comments),
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


class PostImage(db.Model):
    __tablename__ = "post_image"
    id = db.Column(db.Integer, primary_key=True)
    url = db.Column(db.String(255), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    post_id = db.Column(
        db.Integer, db.ForeignKey("post.id", ondelete="CASCADE"), nullable=False
    )

    post = db.relationship("Post", back_populates="images")

    def __repr__(self):
        return f"<PostImage {self.url} for Post {self.post_id}>"


class Comment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=False)
    author_id = db.Column(
        db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False
    )
    post_id = db.Column(
        db.Integer, db.ForeignKey("post.id", ondelete="CASCADE"), nullable=False
    )
    parent_id = db.Column(
        db.Integer, db.ForeignKey("comment.id", ondelete="CASCADE"), nullable=True
    )
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    author = db.relationship("User", back_populates="comments")
    post = db.relationship("Post", back_populates="comments")
    parent = db.relationship("Comment", remote_side=[id], back_populates="replies")
    replies = db.relationship(
        "Comment",
        back_populates="parent",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Comment.created_at.desc()",
    )
    likes = db.relationship(
        "CommentLike",
        back_populates="comment",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Comment {self.id} by User {self.author_id} on Post {self.post_id}>"

    def to_dict(self, include_replies=False):
        data = {
            "id": self.id,
            "content": self.content,
            "author_id": self.author_id,
            "author": self.author.to_summary() if self.author else None,
            "post_id": self.post_id,
            "parent_id": self.parent_id,
            "likes": [like.user_id for like in self.likes],
            "created_at": _isoformat(self.created_at),
        }
        if include_replies:
            data["replies"] = [reply.to_dict() for reply in self.replies]
        return data


class PostLike(db.Model):
    __tablename__ = "post_like"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False
    )
    post_id = db.Column(
        db.Integer, db.ForeignKey("post.id", ondelete="CASCADE"), nullable=False
    )
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    user = db.relationship("User", back_populates="post_likes")
    post = db.relationship("Post", back_populates="likes")

    __table_args__ = (
        db.UniqueConstraint("post_id", "user_id", name="uq_post_like_post_user"),
    )

    def __repr__(self):
        return f"<PostLike User {self.user_id} Post {self.post_id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "post_id": self.post_id,
            "created_at": _isoformat(self.created_at),
        }


class CommentLike(db.Model):
    __tablename__ = "comment_like"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False
    )
    comment_id = db.Column(
        db.Integer, db.ForeignKey("comment.id", ondelete="CASCADE"), nullable=False
    )
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    user = db.relationship("User", back_populates="comment_likes")
    comment = db.relationship("Comment", back_populates="likes")

    __table_args__ = (
        db.UniqueConstraint(
            "comment_id", "user_id", name="uq_comment_like_comment_user"
        ),
    )

    def __repr__(self):
        return f"<CommentLike User {self.user_id} Comment {self.comment_id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "comment_id": self.comment_id,
            "created_at": _isoformat(self.created_at),
        }


class Repost(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False
    )
    post_id = db.Column(
        db.Integer, db.ForeignKey("post.id", ondelete="CASCADE"), nullable=False
    )
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    user = db.relationship("User", back_populates="reposts")
    post = db.relationship("Post", back_populates="reposts")

    __table_args__ = (
        db.UniqueConstraint("post_id", "user_id", name="uq_repost_post_user"),
    )

    def __repr__(self):
        return f"<Repost User {self.user_id} Post {self.post_id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "post_id": self.post_id,
            "created_at": _isoformat(self.created_at),
        }


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(20), nullable=False)
    sender_id = db.Column(
        db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False
    )
    receiver_id = db.Column(
        db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False
    )
    post_id = db.Column(
        db.Integer, db.ForeignKey("post.id", ondelete="CASCADE"), nullable=True
    )
    comment_id = db.Column(
        db.Integer, db.ForeignKey("comment.id", ondelete="CASCADE"), nullable=True
    )
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    sender = db.relationship(
        "User", foreign_keys=[sender_id], back_populates="sent_notifications"
    )
    receiver = db.relationship(
        "User", foreign_keys=[receiver_id], back_populates="received_notifications"
    )
    post = db.relationship("Post")
    comment = db.relationship("Comment")

    __table_args__ = (
        db.Index("ix_notification_receiver_read", "receiver_id", "is_read"),
    )

    def __repr__(self):
        return f"<Notification {self.id} type {self.type}>"

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "post_id": self.post_id,
            "comment_id": self.comment_id,
            "is_read": self.is_read,
            "created_at": _isoformat(self.created_at),
            "sender": self.sender.to_summary() if self.sender else None,
            "post": (
                {
                    "id": self.post.id,
                    "title": self.post.title,
                    "content": self.post.content,
                }
                if self.post
                else None
            ),
            "comment": (
                {"id": self.comment.id, "content": self.comment.content}
                if self.comment
                else None
            ),
        }
