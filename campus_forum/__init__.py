import logging
import os

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_restful import Api as FlaskRestfulApi
from flask_jwt_extended import JWTManager
from flask_login import LoginManager
from sqlalchemy import event
from sqlalchemy.engine import Engine

from config import CONFIGS, DefaultConfig

db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
login_manager = LoginManager()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # Cascading deletes are declared on the foreign keys; SQLite ignores them
    # unless enforcement is switched on per connection.
    if dbapi_connection.__class__.__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_class=None):
    """Creates and configures the Flask application."""
    app = Flask(__name__, template_folder="../templates", static_folder="../static")

    if isinstance(config_class, str):
        if config_class not in CONFIGS:
            raise ValueError(f"Unknown configuration name: {config_class}")
        app.config.from_object(CONFIGS[config_class])
    elif config_class is not None:
        app.config.from_object(config_class)
    else:
        app.config.from_object(DefaultConfig)

    app.logger.setLevel(
        getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    )

    upload_folder = app.config.get("UPLOAD_FOLDER", "uploads")
    if not os.path.isabs(upload_folder):
        upload_folder = os.path.join(os.path.dirname(app.root_path), upload_folder)
    app.config["UPLOAD_FOLDER"] = upload_folder

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    login_manager.init_app(app)
    login_manager.login_view = "core.login"

    fr_api = FlaskRestfulApi(app)

    from .core import views as core_views
    from .core import errors as core_errors
    from .api.routes import (
        PostListResource,
        PostResource,
        CommentResource,
        LikeResource,
        RepostResource,
        TopicResource,
        NotificationListResource,
        NotificationResource,
        NotificationUnreadCountResource,
        NotificationReadAllResource,
        UploadResource,
        AdminDataResource,
        AdminBanUserResource,
        RegisterResource,
        ApiLoginResource,
        ApiLogoutResource,
        CurrentUserResource,
        CompleteProfileResource,
        DeleteAccountResource,
        UserResource,
        SearchResource,
    )

    app.register_blueprint(core_views.core_bp)
    core_errors.register_error_handlers(app)

    fr_api.add_resource(PostListResource, "/api/post")
    fr_api.add_resource(PostResource, "/api/post/<int:post_id>")
    fr_api.add_resource(CommentResource, "/api/comment")
    fr_api.add_resource(LikeResource, "/api/like")
    fr_api.add_resource(RepostResource, "/api/repost")
    fr_api.add_resource(TopicResource, "/api/topic")
    fr_api.add_resource(NotificationListResource, "/api/notifications")
    fr_api.add_resource(
        NotificationUnreadCountResource, "/api/notifications/unread-count"
    )
    fr_api.add_resource(NotificationReadAllResource, "/api/notifications/read-all")
    fr_api.add_resource(
        NotificationResource, "/api/notifications/<int:notification_id>"
    )
    fr_api.add_resource(UploadResource, "/api/upload")
    fr_api.add_resource(AdminDataResource, "/api/admin/data")
    fr_api.add_resource(AdminBanUserResource, "/api/admin/user/ban")
    fr_api.add_resource(RegisterResource, "/api/auth/register")
    fr_api.add_resource(ApiLoginResource, "/api/login")
    fr_api.add_resource(ApiLogoutResource, "/api/logout")
    fr_api.add_resource(CurrentUserResource, "/api/auth/me")
    fr_api.add_resource(CompleteProfileResource, "/api/auth/complete-profile")
    fr_api.add_resource(DeleteAccountResource, "/api/auth/delete-account")
    fr_api.add_resource(UserResource, "/api/users/<int:user_id>")
    fr_api.add_resource(SearchResource, "/api/search")

    from .models.db_models import User

    @login_manager.user_loader
    def load_user(user_id):
        user = db.session.get(User, int(user_id))
        if user is None or user.banned:
            return None
        return user

    if not os.path.exists(upload_folder):
        os.makedirs(upload_folder)
        app.logger.info(f"Created folder: {upload_folder}")

    return app
