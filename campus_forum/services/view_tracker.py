from flask import current_app, request
from itsdangerous import BadSignature, SignatureExpired, TimestampSigner
from sqlalchemy.exc import SQLAlchemyError

from .. import db
from ..models.db_models import Post

VIEW_COOKIE_PREFIX = "viewed_post_"
VIEW_COOKIE_SALT = "post-view"


def view_cookie_name(post_id):
    return f"{VIEW_COOKIE_PREFIX}{post_id}"


def _signer():
    return TimestampSigner(current_app.config["SECRET_KEY"], salt=VIEW_COOKIE_SALT)


def has_recent_view(post_id):
    """True when the request carries a valid, unexpired view cookie for the post."""
    token = request.cookies.get(view_cookie_name(post_id))
    if not token:
        return False
    try:
        value = _signer().unsign(
            token, max_age=current_app.config["VIEW_COOLDOWN_SECONDS"]
        )
    except SignatureExpired:
        return False
    except BadSignature:
        current_app.logger.debug(f"Ignoring tampered view cookie for post {post_id}")
        return False
    return value.decode() == str(post_id)


def increment_view_count(post_id):
    """
    Adds one view with a single UPDATE statement. Failures are logged and
    rolled back so the page still renders; returns whether the row changed.
    """
    try:
        result = db.session.execute(
            db.update(Post)
            .where(Post.id == post_id)
            .values(view_count=Post.view_count + 1)
        )
        db.session.commit()
        return result.rowcount == 1
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(
            f"Error incrementing view count for post {post_id}: {e}"
        )
        return False


def track_view(post_id):
    """
    Counts a view unless one was counted for this visitor within the cooldown.
    Returns the cookie to set on the response as a dict of
    ``response.set_cookie`` keyword arguments, or None when nothing was counted.
    """
    if has_recent_view(post_id):
        current_app.logger.debug(f"View for post {post_id} already counted")
        return None

    if not increment_view_count(post_id):
        return None

    secure = current_app.config.get("VIEW_COOKIE_SECURE", False)
    return {
        "key": view_cookie_name(post_id),
        "value": _signer().sign(str(post_id)).decode(),
        "max_age": current_app.config["VIEW_COOLDOWN_SECONDS"],
        "path": "/",
        "httponly": True,
        "secure": secure,
        "samesite": "None" if secure else "Lax",
    }


def apply_view_cookie(response, cookie):
    if cookie:
        response.set_cookie(**cookie)
    return response
