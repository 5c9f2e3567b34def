from flask import request
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .. import db


def _wants_json():
    return request.path.startswith("/api/")


def register_error_handlers(app):
    """JSON error bodies for the API; HTML pages keep Flask's defaults."""

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        if not _wants_json():
            return e
        return {"error": e.description or e.name}, e.code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        db.session.rollback()
        app.logger.warning(f"Integrity error on {request.method} {request.path}: {e.orig}")
        if not _wants_json():
            return "Conflict", 409
        return {"error": "Conflict"}, 409

    @app.errorhandler(Exception)
    def handle_unexpected_exception(e):
        db.session.rollback()
        app.logger.error(
            f"Unhandled exception on {request.method} {request.path}: {e}",
            exc_info=e,
        )
        if not _wants_json():
            return "Internal server error", 500
        return {"error": "Internal server error"}, 500
