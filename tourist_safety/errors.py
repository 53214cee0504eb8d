import logging

from flask import jsonify, request
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .extensions import db, jwt

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error that maps directly onto an HTTP response."""

    def __init__(self, status_code, message, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details


class ValidationError(ApiError):
    def __init__(self, details):
        super().__init__(400, 'Validation error', details)


def error_response(status_code, message, details=None, **extra):
    body = {'success': False, 'error': message}
    if details is not None:
        body['details'] = details
    body.update(extra)
    return jsonify(body), status_code


def _current_user_id():
    try:
        verify_jwt_in_request(optional=True)
        return get_jwt_identity()
    except Exception:
        return None


def register_error_handlers(app):

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        logger.warning('%s %s - %s - %s', request.method, request.path, error.status_code, error.message)
        return error_response(error.status_code, error.message, error.details)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        logger.warning('%s %s - 409 - integrity error: %s', request.method, request.path, error.orig)
        return error_response(409, 'Resource already exists')

    @app.errorhandler(404)
    def handle_not_found(error):
        return error_response(404, 'Route not found', path=request.path, method=request.method)

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return error_response(405, 'Method not allowed', path=request.path, method=request.method)

    @app.errorhandler(429)
    def handle_rate_limited(error):
        return error_response(429, 'Too many requests, please try again later')

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return error_response(error.code, error.description)

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        db.session.rollback()
        logger.exception('%s %s - 500 - unhandled error (user=%s, ip=%s)',
                         request.method, request.path, _current_user_id(), request.remote_addr)
        message = 'Internal server error'
        if app.config.get('ENV_NAME') == 'production':
            message = 'Something went wrong'
        return error_response(500, message)


def register_jwt_handlers():

    @jwt.unauthorized_loader
    def missing_token(reason):
        return error_response(401, 'Access token required')

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return error_response(401, 'Invalid or expired token')

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return error_response(401, 'Invalid or expired token')

    @jwt.needs_fresh_token_loader
    def stale_token(jwt_header, jwt_payload):
        return error_response(401, 'Fresh token required')

    @jwt.revoked_token_loader
    def revoked_token(jwt_header, jwt_payload):
        return error_response(401, 'Token has been revoked')
