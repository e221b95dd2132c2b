"""
Lot Workflow Engine - SQLAlchemy models.

The ``db`` extension object is created here and bound in the app factory.
Model modules import it from this package.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
