"""
Blueprint registration for the dojo rank engine.

All blueprints are registered without URL prefixes; routes carry their full /api paths.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.core import bp as core_bp
    from blueprints.clubs import bp as clubs_bp
    from blueprints.students import bp as students_bp

    app.register_blueprint(core_bp)
    app.register_blueprint(clubs_bp)
    app.register_blueprint(students_bp)
