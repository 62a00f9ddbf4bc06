"""
Branch Policy Engine
SQLAlchemy models.

Model modules register themselves on import; ``create_app`` imports them
before ``db.create_all()``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
