# app/__init__.py

import uuid
import logging
from flask import Flask, jsonify, g, request
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from sqlalchemy import text
from .config import Config

db = SQLAlchemy()
migrate = Migrate()

def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Configure logging to show INFO level messages
    app.logger.setLevel(logging.INFO)
    if not app.logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        formatter = logging.Formatter('[%(asctime)s] %(levelname)s: %(message)s')
        handler.setFormatter(formatter)
        app.logger.addHandler(handler)

    db.init_app(app)
    migrate.init_app(app, db)

    # The SPA is served from a different origin (Vercel preview/prod, Vite dev server)
    CORS(app, supports_credentials=True, origins=app.config['CORS_ORIGINS'],
         expose_headers=['X-Request-ID', 'X-RateLimit-Limit', 'X-RateLimit-Remaining',
                         'X-RateLimit-Reset', 'Retry-After'])

    # --- 1. REQUEST CORRELATION ---
    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())

    @app.after_request
    def add_request_id_header(response):
        request_id = g.get('request_id')
        if request_id:
            response.headers['X-Request-ID'] = request_id
        return response

    # --- 2. JSON ERROR HANDLERS FOR A SPA ---
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"success": False, "error": "Not found", "error_code": 404}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"success": False, "error": "Method not allowed", "error_code": 405}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f"Unhandled error (request {g.get('request_id')}): {error}")
        return jsonify({"success": False, "error": "Internal server error", "error_code": 500}), 500

    # --- 3. REGISTER BLUEPRINTS ---
    from .api.grants import bp as grants_bp
    from .api.tasks import bp as tasks_bp
    from .api.comments import bp as comments_bp
    from .api.approvals import bp as approvals_bp
    from .api.two_factor import bp as two_factor_bp
    from .api.integrations import bp as integrations_bp
    from .api.notifications import bp as notifications_bp
    from .api.oauth import bp as oauth_bp
    from .api.calendar import bp as calendar_bp
    from .api.admin import bp as admin_bp
    from .api.cron import bp as cron_bp
    from .api.activity import bp as activity_bp

    # Register them all with the '/api' prefix
    for blueprint in (grants_bp, tasks_bp, comments_bp, approvals_bp, two_factor_bp,
                      integrations_bp, notifications_bp, oauth_bp, calendar_bp,
                      admin_bp, cron_bp, activity_bp):
        app.register_blueprint(blueprint, url_prefix='/api')

    from .auth import bp as auth_blueprint
    app.register_blueprint(auth_blueprint, url_prefix='/auth')

    @app.route('/api/health', methods=['GET'])
    def health():
        try:
            db.session.execute(text('SELECT 1'))
            return jsonify({"status": "ok", "database": "connected"}), 200
        except Exception as e:
            app.logger.error(f"Health check database error: {str(e)}")
            return jsonify({"status": "degraded", "database": "error"}), 503

    with app.app_context():
        from . import models

    return app
