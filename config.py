import os
from datetime import timedelta


def _env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or "you-should-change-this"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY") or "super-secret-jwt"
    JWT_TOKEN_LOCATION = ["headers", "cookies"]
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(
        days=int(os.environ.get("JWT_ACCESS_TOKEN_DAYS", 30))
    )
    JWT_COOKIE_SECURE = False
    JWT_COOKIE_CSRF_PROTECT = False
    JWT_COOKIE_SAMESITE = "Lax"
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER") or "uploads"
    ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024
    UPLOAD_MAX_DIMENSION = 1920
    UPLOAD_MAX_PIXELS = 40_000_000
    UPLOAD_JPEG_QUALITY = 85
    VIEW_COOLDOWN_SECONDS = 60 * 60
    VIEW_COOKIE_SECURE = False
    SITE_URL = os.environ.get("SITE_URL") or "http://localhost:5000"
    LOG_LEVEL = os.environ.get("LOG_LEVEL") or "INFO"
    # Flask-JWT-Extended error handlers only run when exceptions propagate.
    PROPAGATE_EXCEPTIONS = True


class DefaultConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or "sqlite:///forum.db"
    LOG_LEVEL = os.environ.get("LOG_LEVEL") or "DEBUG"


class ProductionConfig(Config):
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or "sqlite:///forum.db"
    JWT_COOKIE_SECURE = True
    JWT_COOKIE_CSRF_PROTECT = _env_flag("JWT_COOKIE_CSRF_PROTECT", True)
    VIEW_COOKIE_SECURE = True
    SESSION_COOKIE_SECURE = True


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret-key"
    WTF_CSRF_ENABLED = False
    SERVER_NAME = "localhost"
    APPLICATION_ROOT = "/"
    PREFERRED_URL_SCHEME = "http"
    SESSION_COOKIE_NAME = "session"
    UPLOAD_FOLDER = "test_uploads"
    SITE_URL = "http://localhost"
    LOG_LEVEL = "DEBUG"


CONFIGS = {
    "default": DefaultConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
