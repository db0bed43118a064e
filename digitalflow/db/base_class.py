# Fichier: digitalflow/db/base_class.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Declarative base shared by every SQLAlchemy model.
    Used to create the schema at startup and in the test fixtures.
    """
