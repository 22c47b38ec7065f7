"""
Blueprint registration for StudySpark.

All blueprints are registered without URL prefixes; every route answers
JSON. Application errors are mapped to JSON responses here.
"""

from __future__ import annotations

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from errors import StudySparkError

logger = logging.getLogger(__name__)


def register_blueprints(app):
    from blueprints.core import bp as core_bp
    from blueprints.subjects import bp as subjects_bp
    from blueprints.assignments import bp as assignments_bp
    from blueprints.materials import bp as materials_bp
    from blueprints.timetable import bp as timetable_bp
    from blueprints.ai import bp as ai_bp
    from blueprints.public import bp as public_bp

    app.register_blueprint(core_bp)
    app.register_blueprint(subjects_bp)
    app.register_blueprint(assignments_bp)
    app.register_blueprint(materials_bp)
    app.register_blueprint(timetable_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(public_bp)


def register_error_handlers(app):
    @app.errorhandler(StudySparkError)
    def handle_app_error(exc: StudySparkError):
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc, exc_info=exc.__cause__ is not None)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.description}), exc.code
