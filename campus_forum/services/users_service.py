from .. import db
from ..models.db_models import POST_VIEW_MODES, Post, User

PROFILE_FIELDS = ("name", "avatar", "bio", "post_view_mode")


class ProfileError(ValueError):
    """Raised when profile changes fail validation."""


def update_profile(user, changes):
    """
    Applies the profile fields present in ``changes`` and commits.

    ``name`` must not be blank, ``post_view_mode`` must be one of
    POST_VIEW_MODES; empty ``avatar`` and ``bio`` values are stored as NULL.
    """
    if "post_view_mode" in changes and changes["post_view_mode"] not in POST_VIEW_MODES:
        raise ProfileError("Invalid post view mode")
    if "name" in changes:
        name = changes["name"]
        if not isinstance(name, str) or not name.strip():
            raise ProfileError("Name cannot be blank")
        user.name = name.strip()
    if "avatar" in changes:
        user.avatar = changes["avatar"] or None
    if "bio" in changes:
        user.bio = changes["bio"] or None
    if "post_view_mode" in changes:
        user.post_view_mode = changes["post_view_mode"]
    db.session.commit()
    return user


def set_banned(user, banned):
    user.banned = banned
    db.session.commit()
    return user


def delete_account(user):
    db.session.delete(user)
    db.session.commit()


def admin_overview():
    """All users and posts, newest first, for the admin dashboard."""
    users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
    posts = Post.query.order_by(Post.created_at.desc(), Post.id.desc()).all()
    return users, posts
