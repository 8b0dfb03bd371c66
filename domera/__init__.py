import logging
import os
from datetime import datetime

from flask import Flask, jsonify
from flask_cors import CORS
from flask_swagger_ui import get_swaggerui_blueprint
from sqlalchemy import text

from domera.config import get_config
from domera.errors import register_error_handlers
from domera.extensions import db, jwt, mail
from domera.utils.audit import register_audit_listeners


def create_app(config_overrides=None):
    app = Flask(__name__)

    # Configuration
    app.config.from_object(get_config())
    if config_overrides:
        app.config.update(config_overrides)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Verzeichnisse vorbereiten (Warnung statt Abbruch bei fehlenden Rechten)
    try:
        os.makedirs(os.path.join(app.config['UPLOAD_ROOT'], 'invoices'), mode=0o755, exist_ok=True)
    except PermissionError:
        app.logger.error(f"Keine Berechtigung für Upload-Verzeichnis unter {app.config['UPLOAD_ROOT']}")

    # Initialize extensions with app
    db.init_app(app)
    jwt.init_app(app)
    mail.init_app(app)
    CORS(app)
    register_audit_listeners()

    # Swagger UI configuration
    SWAGGER_URL = '/api/docs'
    API_URL = '/static/swagger.json'
    swaggerui_blueprint = get_swaggerui_blueprint(
        SWAGGER_URL,
        API_URL,
        config={
            'app_name': "Domera API"
        }
    )
    app.register_blueprint(swaggerui_blueprint, url_prefix=SWAGGER_URL)

    register_blueprints(app)
    register_error_handlers(app)
    register_cli_commands(app)
    initialize_database(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        try:
            db.session.execute(text('SELECT 1'))
            db_status = 'connected'
        except Exception as e:
            db.session.rollback()
            db_status = f'disconnected: {str(e)}'

        return jsonify({
            'status': 'healthy',
            'database': db_status,
            'timestamp': datetime.now().isoformat()
        })

    return app


def register_blueprints(app):
    """Register all blueprints to avoid circular imports"""
    # Auth Routes (Session-Login und API-Token)
    from domera.routes.auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')

    # Main Routes (Dashboard)
    from domera.routes.main import main_bp
    app.register_blueprint(main_bp)

    from domera.routes.companies import companies_bp
    app.register_blueprint(companies_bp, url_prefix='/api/companies')

    from domera.routes.buildings import buildings_bp
    app.register_blueprint(buildings_bp, url_prefix='/api/buildings')

    from domera.routes.apartments import apartments_bp
    app.register_blueprint(apartments_bp, url_prefix='/api/apartments')

    from domera.routes.meters import meters_bp
    app.register_blueprint(meters_bp, url_prefix='/api/meters')

    from domera.routes.meter_readings import meter_readings_bp
    app.register_blueprint(meter_readings_bp, url_prefix='/api/meter-readings')

    from domera.routes.invitations import invitations_bp
    app.register_blueprint(invitations_bp, url_prefix='/api/invitations')

    from domera.routes.invoices import invoices_bp
    app.register_blueprint(invoices_bp, url_prefix='/api/invoices')

    from domera.routes.projects import projects_bp
    app.register_blueprint(projects_bp, url_prefix='/api/projects')

    from domera.routes.news import news_bp
    app.register_blueprint(news_bp, url_prefix='/api/news')

    app.logger.debug(f"{len(app.blueprints)} blueprints registered")


def register_cli_commands(app):
    from domera.cli import populate_apartment_ids_command, populate_reading_meta_command, seed_demo_command

    app.cli.add_command(populate_apartment_ids_command)
    app.cli.add_command(populate_reading_meta_command)
    app.cli.add_command(seed_demo_command)


def initialize_database(app):
    """Legt fehlende Tabellen an."""
    with app.app_context():
        from domera import models  # noqa: F401  (Modelle registrieren)
        db.create_all()
        app.logger.info("Database tables ready")
