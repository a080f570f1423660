"""
SQLAlchemy Base for the JITAI engine.

Usage:
    from jitai.models.base import Base

    class MyModel(Base):
        __tablename__ = "my_table"
        ...
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by every persisted model."""


__all__ = ["Base"]
