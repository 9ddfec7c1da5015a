from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os
import sys
import logging
from logging.handlers import RotatingFileHandler

from config import Config

# instante globale ale extensiilor
# vor fi initializate in create_app

db = SQLAlchemy()
login_manager = LoginManager()

# Limiter pentru protecție împotriva atacurilor de tip brute-force
limiter = Limiter(key_func=get_remote_address)

from .models import User
from .errors import problem, register_error_handlers

@login_manager.user_loader
def load_user(user_id):
    # primeste id-ul (string) din sesiune si returneaza obiectul User
    return db.session.get(User, int(user_id))

@login_manager.unauthorized_handler
def unauthorized():
    return problem(401, 'Unauthorized', 'Autentificare necesara pentru acces')


def create_app(config_class=Config):
    """
    Functie care creeaza si configureaza aplicatia Flask.
    Initializeaza extensiile si inregistreaza rutele API.
    """
    app = Flask(__name__)
    app.config.from_object(config_class)    # initializare extensii cu aplicatia
    db.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)

    # Configurare logging
    if not app.debug and not app.testing:
        if app.config.get('LOG_TO_STDOUT'):
            stream_handler = logging.StreamHandler(sys.stdout)
            stream_handler.setLevel(logging.INFO)
            app.logger.addHandler(stream_handler)
        else:
            # Asigurare existență director logs
            if not os.path.exists('logs'):
                os.mkdir('logs')

            # Configurare handler fișier de log
            file_handler = RotatingFileHandler('logs/money_tracker.log',
                                              maxBytes=10240,
                                              backupCount=10)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        app.logger.info('Aplicația de buget lunar a pornit')

    # inregistrare blueprint pentru API
    from money_tracker.routes import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    # Inregistrare handlers pentru erori (raspunsuri application/problem+json)
    register_error_handlers(app)

    return app
