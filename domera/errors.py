"""Fachliche Fehler der Services.

Alle Fehler erben von ``ValueError``, damit Aufrufer wie bisher mit
``except ValueError`` arbeiten können. Der registrierte Error-Handler
liefert ``{'error': ...}`` mit dem passenden Statuscode.
"""

from flask import jsonify, current_app

from domera.extensions import db


class DomeraError(ValueError):
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(DomeraError):
    status_code = 400


class PermissionDenied(DomeraError):
    status_code = 403


class NotFoundError(DomeraError):
    status_code = 404


class ConflictError(DomeraError):
    status_code = 409


def register_error_handlers(app):
    @app.errorhandler(DomeraError)
    def handle_domera_error(error):
        db.session.rollback()
        current_app.logger.info(f"{error.__class__.__name__}: {error.message}")
        return jsonify({'error': error.message}), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500

    @app.errorhandler(413)
    def too_large(error):
        return jsonify({'error': 'File too large'}), 413
