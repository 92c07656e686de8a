import os

import structlog
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .dashboard import trend_pool
from .errors import ApiError
from .log import configure_logging
from .mailer import ResendMailer
from .models import db
from .routes import api

log = structlog.get_logger(__name__)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///finance.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')
    app.config['RESEND_API_KEY'] = os.environ.get('RESEND_API_KEY')
    app.config['EMAIL_FROM'] = os.environ.get('EMAIL_FROM', 'myRupaiya <no-reply@localhost>')
    app.config['APP_BASE_URL'] = os.environ.get('APP_BASE_URL', 'http://localhost:5000')
    app.config['TREND_WORKERS'] = int(os.environ.get('TREND_WORKERS', 6))
    app.config['MAX_PAGE_SIZE'] = int(os.environ.get('MAX_PAGE_SIZE', 100))
    app.config['RESET_TOKEN_TTL_MINUTES'] = int(os.environ.get('RESET_TOKEN_TTL_MINUTES', 15))
    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO')
    if test_config:
        app.config.update(test_config)

    configure_logging(app.config['LOG_LEVEL'])
    db.init_app(app)
    app.extensions['mailer'] = app.config.get('MAILER') or ResendMailer(
        app.config['RESEND_API_KEY'], app.config['EMAIL_FROM']
    )
    app.extensions['trend_pool'] = trend_pool(app.config['TREND_WORKERS'])
    app.register_blueprint(api)
    register_error_handlers(app)

    @app.route('/health')
    def health():
        return jsonify({'ok': True})

    with app.app_context():
        db.create_all()
    return app


# ---------------------- Error Handlers ----------------------
def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(err):
        db.session.rollback()
        if err.status >= 500:
            log.error('api_error', error=err.message, status=err.status)
        return jsonify(err.to_dict()), err.status

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify({'error': err.description}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        db.session.rollback()
        log.exception('unhandled_error')
        return jsonify({'error': 'Something went wrong'}), 500


# ---------------------- Run App ----------------------
if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True)
