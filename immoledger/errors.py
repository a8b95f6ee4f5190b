# immoledger/errors.py
import logging

from flask import jsonify

_logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for every error the billing and reservation engines raise."""
    kind = 'error'
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message, 'kind': self.kind}


class NotFound(LedgerError):
    kind = 'not_found'
    status_code = 404


class PermissionDenied(LedgerError):
    kind = 'permission_denied'
    status_code = 403


class ValidationError(LedgerError):
    kind = 'validation_error'
    status_code = 400


class InvalidTransition(ValidationError):
    """A booking status change the lifecycle does not allow."""
    kind = 'invalid_transition'


class ConflictError(LedgerError):
    kind = 'conflict'
    status_code = 409


def register_error_handlers(app):
    @app.errorhandler(LedgerError)
    def ledger_error(e):
        _logger.warning('%s rejected: %s', e.kind, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(400)
    def bad_request(e): return jsonify(error='bad_request', kind='validation_error'), 400

    @app.errorhandler(404)
    def not_found(e): return jsonify(error='not_found', kind='not_found'), 404

    @app.errorhandler(405)
    def method_not_allowed(e): return jsonify(error='method_not_allowed'), 405

    @app.errorhandler(500)
    def server_error(e): return jsonify(error='server_error'), 500
