"""
projectflow/extensions.py

Extension singletons, bound to the app in create_app().
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf import CSRFProtect

from .mailer import Mailer
from .storage import LocalObjectStorage

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
mailer = Mailer()
storage = LocalObjectStorage()
