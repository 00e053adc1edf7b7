"""
Todo Collaboration Service
SQLAlchemy extension instance shared by all models.

Model modules import ``db`` from here; the app factory imports the model
modules so Alembic and ``db.create_all()`` see every table.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
