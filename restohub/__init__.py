from flask import Flask, jsonify
from flask_smorest import Api
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_mail import Mail
from flask_cors import CORS
from config import Config

db = SQLAlchemy()
migrate = Migrate()
mail = Mail()
jwt = JWTManager()


def create_app(config_class=Config):

    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)
    jwt.init_app(app)
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    from .middleware import init_middleware
    from .celery_config import make_celery
    from .controllers.auth import blp as AuthBlp
    from .controllers.orders import blp as OrdersBlp
    from .controllers.roles import blp as RolesBlp
    from .controllers.catalog import blp as CatalogBlp
    from .controllers.notifications import blp as NotificationsBlp
    from .services.logout import is_token_revoked
    from .services.roles import seed_roles

    # Registered before Api so flask-smorest keeps its HTTPException handler
    init_middleware(app)

    @jwt.token_in_blocklist_loader
    def check_if_token_in_blocklist(jwt_header, jwt_payload):
        return is_token_revoked(jwt_payload)

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            "message": "The token has expired.",
            "error": "token_expired"
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            "message": "Signature verification failed.",
            "error": "invalid_token"
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            "message": "Request doesn't contain an access token.",
            "error": "authorization_required"
        }), 401

    @jwt.revoked_token_loader
    def revoked_token_callback(jwt_header, jwt_payload):
        return jsonify({
            "message": "The token has been revoked.",
            "error": "token_revoked"
        }), 401

    api = Api(app)
    api.register_blueprint(AuthBlp)
    api.register_blueprint(OrdersBlp)
    api.register_blueprint(RolesBlp)
    api.register_blueprint(CatalogBlp)
    api.register_blueprint(NotificationsBlp)

    app.extensions["celery"] = make_celery(app)

    if app.config.get("AUTO_INIT_DB"):
        with app.app_context():
            db.create_all()
            seed_roles()

    @app.route('/')
    def home():
        return jsonify({"message": "Welcome to the RestoHub Restaurant Management API!"})

    return app
