"""Testing helpers."""
from contextlib import contextmanager
from typing import Any, Callable, Generator

from sqlalchemy.orm import sessionmaker

from ... import credentials
from ...factory import get_engine


@contextmanager
def temporary_db(**kwargs: Any) \
        -> Generator[Callable[[], credentials.CredentialStore], None, None]:
    """Provide a factory for store handles on an in-memory database."""
    engine = get_engine('sqlite://')
    credentials.create_all(engine)
    try:
        yield credentials.store_factory(sessionmaker(bind=engine), **kwargs)
    finally:
        credentials.drop_all(engine)
        engine.dispose()
