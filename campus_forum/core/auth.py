from functools import wraps

from flask import current_app, g
from flask_jwt_extended import (
    create_access_token,
    get_jwt_identity,
    verify_jwt_in_request,
)
from flask_login import current_user

from .. import db, jwt
from ..models.db_models import User


def issue_access_token(user):
    """Creates an access token carrying the profile fields the UI renders
    without another round trip (role, name, avatar, post view mode)."""
    return create_access_token(
        identity=str(user.id),
        additional_claims={
            "role": user.role,
            "name": user.name,
            "avatar": user.avatar,
            "post_view_mode": user.post_view_mode,
        },
    )


def authenticate(email, password):
    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        return None
    if user.banned:
        current_app.logger.info(f"Rejected login for banned user {user.id}")
        return None
    return user


def get_session_user():
    """Returns the user behind the browser session or the JWT, if any."""
    if current_user.is_authenticated:
        return current_user._get_current_object()

    verify_jwt_in_request(optional=True)
    identity = get_jwt_identity()
    if identity is None:
        return None
    user = db.session.get(User, int(identity))
    if user is None or user.banned:
        return None
    return user


def session_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_session_user()
        if user is None:
            return {"error": "Unauthorized"}, 401
        g.session_user = user
        return f(*args, **kwargs)

    return decorated_function


def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_session_user()
        if user is None:
            return {"error": "Unauthorized"}, 401
        if not user.is_admin:
            return {"error": "Forbidden"}, 403
        g.session_user = user
        return f(*args, **kwargs)

    return decorated_function


@jwt.unauthorized_loader
def _missing_token_callback(reason):
    return {"error": "Unauthorized"}, 401


@jwt.invalid_token_loader
def _invalid_token_callback(reason):
    current_app.logger.debug(f"Rejected invalid token: {reason}")
    return {"error": "Unauthorized"}, 401


@jwt.expired_token_loader
def _expired_token_callback(jwt_header, jwt_payload):
    return {"error": "Session expired"}, 401
