from flask import current_app

from .. import db
from ..models.db_models import Comment, CommentLike, Notification, Post, PostLike

NOTIFICATIONS_PAGE_SIZE = 20


def create_notification(
    notification_type, sender_id, receiver_id, post_id=None, comment_id=None
):
    """
    Adds a notification to the session unless it would be pointless.

    Nothing is created when the sender is the receiver, or while an identical
    notification (same type, sender, receiver, post and comment) is still
    unread. The caller owns the commit.
    """
    logger = current_app.logger

    if sender_id == receiver_id:
        return None

    duplicate = Notification.query.filter_by(
        type=notification_type,
        sender_id=sender_id,
        receiver_id=receiver_id,
        post_id=post_id,
        comment_id=comment_id,
        is_read=False,
    ).first()
    if duplicate:
        logger.debug(
            f"Suppressed duplicate {notification_type} notification from user "
            f"{sender_id} to user {receiver_id} (unread notification {duplicate.id})"
        )
        return None

    notification = Notification(
        type=notification_type,
        sender_id=sender_id,
        receiver_id=receiver_id,
        post_id=post_id,
        comment_id=comment_id,
    )
    db.session.add(notification)
    return notification


def toggle_post_like(user, post):
    """Returns (liked, like_row, likes_count) after flipping the user's like."""
    existing = PostLike.query.filter_by(user_id=user.id, post_id=post.id).first()
    if existing:
        db.session.delete(existing)
        db.session.commit()
        current_app.logger.info(f"User {user.id} unliked post {post.id}")
        return False, None, PostLike.query.filter_by(post_id=post.id).count()

    like = PostLike(user_id=user.id, post_id=post.id)
    db.session.add(like)
    create_notification("LIKE_POST", user.id, post.author_id, post_id=post.id)
    db.session.commit()
    current_app.logger.info(f"User {user.id} liked post {post.id}")
    return True, like, PostLike.query.filter_by(post_id=post.id).count()


def toggle_comment_like(user, comment):
    existing = CommentLike.query.filter_by(
        user_id=user.id, comment_id=comment.id
    ).first()
    if existing:
        db.session.delete(existing)
        db.session.commit()
        current_app.logger.info(f"User {user.id} unliked comment {comment.id}")
        return False, None, CommentLike.query.filter_by(comment_id=comment.id).count()

    like = CommentLike(user_id=user.id, comment_id=comment.id)
    db.session.add(like)
    create_notification(
        "LIKE_COMMENT",
        user.id,
        comment.author_id,
        post_id=comment.post_id,
        comment_id=comment.id,
    )
    db.session.commit()
    current_app.logger.info(f"User {user.id} liked comment {comment.id}")
    return True, like, CommentLike.query.filter_by(comment_id=comment.id).count()


def notify_comment_created(comment, post, replied_to=None):
    """REPLY_COMMENT to the author of the comment replied to, else REPLY_POST."""
    if replied_to is not None:
        return create_notification(
            "REPLY_COMMENT",
            comment.author_id,
            replied_to.author_id,
            post_id=post.id,
            comment_id=comment.id,
        )
    return create_notification(
        "REPLY_POST",
        comment.author_id,
        post.author_id,
        post_id=post.id,
        comment_id=comment.id,
    )


def get_recent_notifications(user, limit=NOTIFICATIONS_PAGE_SIZE):
    return (
        Notification.query.filter_by(receiver_id=user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def get_unread_count(user):
    return Notification.query.filter_by(receiver_id=user.id, is_read=False).count()


def mark_all_read(user):
    updated = Notification.query.filter_by(receiver_id=user.id, is_read=False).update(
        {"is_read": True}, synchronize_session=False
    )
    db.session.commit()
    return updated


def find_target(target_type, target_id):
    if target_type == "post":
        return db.session.get(Post, target_id)
    if target_type == "comment":
        return db.session.get(Comment, target_id)
    return None
