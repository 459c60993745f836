"""Flask extensions shared by Daydrop's models and the SQL content repository."""

from flask_sqlalchemy import SQLAlchemy

# Bound in create_app(); models.py and daydrop.repository import it from here.
db = SQLAlchemy()
