"""Credential store backed by a SQLAlchemy session."""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, List, NamedTuple, Optional

from pytz import UTC
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query
from sqlalchemy.orm.session import Session

from . import passwords
from .models import DBPasswordResetToken, DBUser, DBUserLogin

logger = logging.getLogger(__name__)

INCORRECT_PASSWORD = 'Incorrect password.'
INVALID_TOKEN = 'Invalid token.'
USER_ID_NOT_FOUND = 'UserId not found.'


class IdentityResult(NamedTuple):
    """Outcome of a credential store write."""

    succeeded: bool = False
    errors: List[str] = []

    @classmethod
    def success(cls) -> 'IdentityResult':
        return cls(succeeded=True, errors=[])

    @classmethod
    def failed(cls, *errors: str) -> 'IdentityResult':
        return cls(succeeded=False, errors=list(errors))


class CredentialStore:
    """
    Handle on the credential store for the duration of one operation.

    Instances are context managers. Each write commits on its own; anything
    left pending when the handle is released is rolled back, and the
    underlying session is always closed.

    Parameters
    ----------
    session : :class:`sqlalchemy.orm.session.Session`
        A session that this handle owns.
    password_min_length : int
        Shortest password accepted by :meth:`create` and password changes.
    reset_token_lifetime : int
        Number of seconds for which a password reset token is valid.

    """

    def __init__(self, session: Session, password_min_length: int = 6,
                 reset_token_lifetime: int = 86400) -> None:
        self.session = session
        self.password_min_length = password_min_length
        self.reset_token_lifetime = reset_token_lifetime

    def __enter__(self) -> 'CredentialStore':
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Discard uncommitted changes and release the session."""
        try:
            self.session.rollback()
        finally:
            self.session.close()

    # Lookups.

    @property
    def users(self) -> Query:
        """All credential records, as a query that callers can refine."""
        return self.session.query(DBUser)

    def find_by_id(self, user_id: Optional[str]) -> Optional[DBUser]:
        if not user_id:
            return None
        return self.session.get(DBUser, user_id)

    def find_by_name(self, user_name: Optional[str]) -> Optional[DBUser]:
        if not user_name:
            return None
        return self.users.filter(DBUser.user_name == user_name).first()

    def find_by_email(self, email: Optional[str]) -> Optional[DBUser]:
        if not email:
            return None
        return self.users.filter(DBUser.email == email).first()

    def find_by_login(self, login_provider: str,
                      provider_key: str) -> Optional[DBUser]:
        db_login = (
            self.session.query(DBUserLogin)
            .filter(DBUserLogin.login_provider == login_provider)
            .filter(DBUserLogin.provider_key == provider_key)
            .first()
        )
        if db_login is None:
            return None
        return db_login.user

    # Writes.

    def create(self, db_user: DBUser,
               password: Optional[str] = None) -> IdentityResult:
        """
        Add a new credential record.

        Parameters
        ----------
        db_user : :class:`.DBUser`
            A transient record. An ``id`` is generated if not set.
        password : str or None
            If ``None`` the user can only authenticate with an external
            login.

        Returns
        -------
        :class:`.IdentityResult`

        """
        errors = self._validate_user(db_user)
        if password is not None:
            errors += self._validate_password(password)
        if errors:
            return IdentityResult.failed(*errors)

        if not db_user.id:
            db_user.id = str(uuid.uuid4())
        if password is not None:
            db_user.password_hash = passwords.hash_password(password)
        db_user.security_stamp = passwords.new_security_stamp()
        self.session.add(db_user)
        return self._commit(f'create {db_user.user_name}')

    def update(self, db_user: DBUser) -> IdentityResult:
        """Persist changes made to a loaded credential record."""
        errors = self._validate_user(db_user)
        if errors:
            return IdentityResult.failed(*errors)
        self.session.add(db_user)
        return self._commit(f'update {db_user.user_name}')

    def delete(self, db_user: DBUser) -> IdentityResult:
        self.session.delete(db_user)
        return self._commit(f'delete {db_user.user_name}')

    def change_password(self, user_id: str, old_password: str,
                        new_password: str) -> IdentityResult:
        """Replace the password after verifying the current one."""
        db_user = self.find_by_id(user_id)
        if db_user is None:
            return IdentityResult.failed(USER_ID_NOT_FOUND)
        if db_user.password_hash is None \
                or not passwords.check_password(old_password,
                                                db_user.password_hash):
            logger.debug('Password change rejected for %s', db_user.user_name)
            return IdentityResult.failed(INCORRECT_PASSWORD)
        return self._set_password(db_user, new_password)

    def reset_password(self, user_id: str,
                       new_password: str) -> IdentityResult:
        """Replace the password without any proof of the current one."""
        db_user = self.find_by_id(user_id)
        if db_user is None:
            return IdentityResult.failed(USER_ID_NOT_FOUND)
        return self._set_password(db_user, new_password)

    def generate_password_reset_token(self, user_id: str) -> Optional[str]:
        """
        Issue a single-use token for :meth:`reset_password_with_token`.

        Returns ``None`` if there is no such user. Tokens of the user that
        are used up or expired are purged.
        """
        db_user = self.find_by_id(user_id)
        if db_user is None:
            return None
        token = passwords.new_token()
        issued = datetime.now(tz=UTC)
        for db_token in list(db_user.reset_tokens):
            if db_token.consumed or as_utc(db_token.expires_when) <= issued:
                db_user.reset_tokens.remove(db_token)
        self.session.add(DBPasswordResetToken(
            user=db_user,
            token_digest=passwords.digest_token(token),
            issued_when=issued,
            expires_when=issued + timedelta(seconds=self.reset_token_lifetime)
        ))
        result = self._commit(f'issue reset token for {db_user.user_name}')
        if not result.succeeded:
            return None
        return token

    def reset_password_with_token(self, user_id: str, token: str,
                                  new_password: str) -> IdentityResult:
        """Consume a reset token and replace the password."""
        db_user = self.find_by_id(user_id)
        if db_user is None:
            return IdentityResult.failed(USER_ID_NOT_FOUND)
        db_token = (
            self.session.query(DBPasswordResetToken)
            .filter(DBPasswordResetToken.user_id == user_id)
            .filter(DBPasswordResetToken.token_digest
                    == passwords.digest_token(token or ''))
            .first()
        )
        if db_token is None or db_token.consumed \
                or as_utc(db_token.expires_when) <= datetime.now(tz=UTC):
            logger.debug('Rejected reset token for %s', db_user.user_name)
            return IdentityResult.failed(INVALID_TOKEN)

        errors = self._validate_password(new_password)
        if errors:
            return IdentityResult.failed(*errors)
        db_token.consumed = True
        self.session.add(db_token)
        return self._set_password(db_user, new_password)

    # Helpers.

    def _set_password(self, db_user: DBUser,
                      new_password: str) -> IdentityResult:
        errors = self._validate_password(new_password)
        if errors:
            return IdentityResult.failed(*errors)
        db_user.password_hash = passwords.hash_password(new_password)
        db_user.security_stamp = passwords.new_security_stamp()
        self.session.add(db_user)
        return self._commit(f'set password for {db_user.user_name}')

    def _validate_user(self, db_user: DBUser) -> List[str]:
        errors: List[str] = []
        if not db_user.user_name:
            errors.append('Name cannot be null or empty.')
            return errors
        with self.session.no_autoflush:
            same_name = self.find_by_name(db_user.user_name)
            if same_name is not None and same_name is not db_user:
                errors.append(f'Name {db_user.user_name} is already taken.')
            if db_user.email:
                same_email = self.find_by_email(db_user.email)
                if same_email is not None and same_email is not db_user:
                    errors.append(f'Email \'{db_user.email}\' is already taken.')
        return errors

    def _validate_password(self, password: Optional[str]) -> List[str]:
        if not password or len(password) < self.password_min_length:
            return [f'Passwords must be at least {self.password_min_length}'
                    ' characters.']
        return []

    def _commit(self, description: str) -> IdentityResult:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            logger.error('Credential store failed to %s: %s', description, e)
            self.session.rollback()
            return IdentityResult.failed(f'Credential store error: {e}')
        return IdentityResult.success()


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive datetime read back from the database."""
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if moment is not None and moment.tzinfo is None:
        return UTC.localize(moment)
    return moment


def store_factory(sessions: Callable[[], Session], **kwargs: Any) \
        -> Callable[[], CredentialStore]:
    """Bind a session factory into a factory for store handles."""
    def _open() -> CredentialStore:
        return CredentialStore(sessions(), **kwargs)
    return _open
