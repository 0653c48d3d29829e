"""Testing helpers."""
from contextlib import contextmanager
from typing import Any, Generator, NamedTuple

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .. import accounts, credentials
from ..factory import create_security_service, get_engine
from ..service import SecurityService


class Stores(NamedTuple):
    """A service and direct access to the databases behind it."""

    service: SecurityService
    credential_engine: Engine
    account_engine: Engine

    def credential_session(self) -> Session:
        return sessionmaker(bind=self.credential_engine)()

    def account_session(self) -> Session:
        return sessionmaker(bind=self.account_engine)()

    def credential_store(self, **kwargs: Any) -> credentials.CredentialStore:
        return credentials.CredentialStore(self.credential_session(), **kwargs)

    def account_store(self) -> accounts.AccountStore:
        return accounts.AccountStore(self.account_session())


@contextmanager
def temporary_stores(**overrides: Any) -> Generator[Stores, None, None]:
    """Provide a service over two in-memory sqlite databases."""
    credential_engine = get_engine('sqlite://')
    account_engine = get_engine('sqlite://')
    service = create_security_service(credential_engine, account_engine,
                                      create_db=True, **overrides)
    try:
        yield Stores(service, credential_engine, account_engine)
    finally:
        credentials.drop_all(credential_engine)
        accounts.drop_all(account_engine)
        credential_engine.dispose()
        account_engine.dispose()
