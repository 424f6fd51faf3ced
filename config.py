import os
from dotenv import load_dotenv
from datetime import timedelta
from celery.schedules import crontab

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))


class Config:
    PROPAGATE_EXCEPTIONS = True
    API_TITLE = "RestoHub Restaurant Management API"
    API_VERSION = "v1"
    OPENAPI_VERSION = "3.0.3"
    OPENAPI_URL_PREFIX = "/"
    OPENAPI_SWAGGER_UI_PATH = "/swagger-ui"
    OPENAPI_SWAGGER_UI_URL = "https://cdn.jsdelivr.net/npm/swagger-ui-dist/"
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'change-me-flask-secret'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'restohub.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTO_INIT_DB = os.environ.get(
        'AUTO_INIT_DB', 'True').lower() in ['true', '1']

    # Session tokens
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'jwt-secret-key')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(
        days=int(os.getenv('JWT_EXPIRES_DAYS', 7)))
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=30)

    # Credential policy
    MAX_LOGIN_ATTEMPTS = int(os.getenv('MAX_LOGIN_ATTEMPTS', 5))
    PASSWORD_RESET_TOKEN_EXPIRES = timedelta(minutes=15)
    EMAIL_VERIFICATION_TOKEN_EXPIRES = timedelta(hours=24)
    # Delete a user's outstanding tokens of the same kind when a new one is issued
    INVALIDATE_PREVIOUS_TOKENS = os.environ.get(
        'INVALIDATE_PREVIOUS_TOKENS', 'False').lower() in ['true', '1']
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')

    MAIL_SERVER = os.environ.get('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 587))
    MAIL_USE_TLS = os.environ.get(
        'MAIL_USE_TLS', 'True').lower() in ['true', '1']
    MAIL_USE_SSL = os.environ.get(
        'MAIL_USE_SSL', 'False').lower() in ['true', '1']
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get(
        'MAIL_DEFAULT_SENDER', 'no-reply@restohub.local')

    LOG_DIR = os.environ.get('LOG_DIR', os.path.join(basedir, 'logs'))
    LOG_TO_FILE = True

    # Celery Configuration
    CELERY_CONFIG = {
        'broker_url': os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0'),
        'result_backend': os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0'),
        'broker_transport_options': {
            'visibility_timeout': 3600
        },
        'timezone': 'UTC',
        'enable_utc': True,
        'task_time_limit': 30 * 60,  # 30 minutes
        'broker_connection_retry_on_startup': True,
        'beat_schedule': {
            'purge-expired-tokens': {
                'task': 'restohub.tasks.purge_expired_tokens',
                'schedule': crontab(hour=3, minute=0),
            },
        },
    }


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///dev.db')


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'  # Use in-memory SQLite database
    JWT_SECRET_KEY = 'testing-secret-key-with-enough-length-for-hs256'
    MAIL_SUPPRESS_SEND = True
    LOG_TO_FILE = False
    AUTO_INIT_DB = False


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')
    AUTO_INIT_DB = False


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
