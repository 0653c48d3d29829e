"""
Account store: business accounts keyed by username.

Accounts carry the account state, store and member references, role
assignments and API accounts of a user. They live in their own database,
independent of :mod:`platform_security.credentials`.
"""

from sqlalchemy.engine import Engine

from . import models
from .store import AccountStore, store_factory


def create_all(engine: Engine) -> None:
    """Create all tables in the account database."""
    models.Base.metadata.create_all(engine)


def drop_all(engine: Engine) -> None:
    """Drop all tables in the account database."""
    models.Base.metadata.drop_all(engine)
