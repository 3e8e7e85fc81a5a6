# backend/wifipos/extensions.py
# Overview: Flask extension instances shared by models, services and the migration environment.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
