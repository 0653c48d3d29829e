"""
Credential store: usernames, password hashes, security stamps and logins.

The coordinator in :mod:`platform_security.service` only relies on the
lookups and writes of :class:`.CredentialStore`; everything about how
passwords and tokens are hashed stays inside this package.
"""

from sqlalchemy.engine import Engine

from . import models, passwords
from .store import CredentialStore, IdentityResult, store_factory


def create_all(engine: Engine) -> None:
    """Create all tables in the credential database."""
    models.Base.metadata.create_all(engine)


def drop_all(engine: Engine) -> None:
    """Drop all tables in the credential database."""
    models.Base.metadata.drop_all(engine)
