"""Build a :class:`.SecurityService` from configuration."""

from typing import Any, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from . import accounts, config, credentials
from .apikeys import ApiAccountProvider
from .policy import AccessPolicy
from .service import SecurityService


def get_engine(uri: str) -> Engine:
    """Create an engine; in-memory SQLite is shared across sessions."""
    if uri in ('sqlite://', 'sqlite:///:memory:'):
        return create_engine(uri, connect_args={'check_same_thread': False},
                             poolclass=StaticPool)
    if uri.startswith('sqlite'):
        return create_engine(uri, connect_args={'check_same_thread': False})
    return create_engine(uri, pool_pre_ping=True)


def create_security_service(
        credential_engine: Optional[Engine] = None,
        account_engine: Optional[Engine] = None,
        create_db: Optional[bool] = None,
        **overrides: Any) -> SecurityService:
    """
    Wire up the stores, the policy and the API account provider.

    Parameters
    ----------
    credential_engine : :class:`sqlalchemy.engine.Engine` or None
        Defaults to an engine for :data:`config.CREDENTIAL_DATABASE_URI`.
    account_engine : :class:`sqlalchemy.engine.Engine` or None
        Defaults to an engine for :data:`config.ACCOUNT_DATABASE_URI`.
    create_db : bool or None
        Create missing tables. Defaults to :data:`config.CREATE_DB`.
    overrides
        ``non_editable_users``, ``password_min_length`` and
        ``reset_token_lifetime`` replace the configured values.

    """
    if credential_engine is None:
        credential_engine = get_engine(config.CREDENTIAL_DATABASE_URI)
    if account_engine is None:
        account_engine = get_engine(config.ACCOUNT_DATABASE_URI)
    if create_db is None:
        create_db = config.CREATE_DB
    if create_db:
        credentials.create_all(credential_engine)
        accounts.create_all(account_engine)

    credential_stores = credentials.store_factory(
        sessionmaker(bind=credential_engine, expire_on_commit=False),
        password_min_length=overrides.get('password_min_length',
                                          config.PASSWORD_MIN_LENGTH),
        reset_token_lifetime=overrides.get(
            'reset_token_lifetime', config.PASSWORD_RESET_TOKEN_LIFETIME
        ),
    )
    account_stores = accounts.store_factory(
        sessionmaker(bind=account_engine, expire_on_commit=False)
    )
    policy = AccessPolicy(overrides.get('non_editable_users',
                                        config.NON_EDITABLE_USERS))
    return SecurityService(credential_stores, account_stores,
                           ApiAccountProvider(), policy)
