# Overview: Flask extension instances shared by the STOQ app factory, models and CLI.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate(compare_type=True)
