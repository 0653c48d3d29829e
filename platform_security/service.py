"""
Coordinate user operations across the credential and account stores.

Each user is kept as two records in two independent stores: a credential
record (see :mod:`.credentials`) and an account record (see
:mod:`.accounts`), joined by username. There is no transaction spanning
both stores, so every write is a sequence of steps:

1. the credential store is written and committed;
2. only if that succeeded, the account store is written and committed.

If step 2 fails, step 1 is **not** undone. The caller gets a result of kind
:attr:`.FailureKind.INCONSISTENCY` and the stores stay out of step until
someone repairs them. Nothing here retries.

Store handles are opened per operation and always released before the
operation returns.
"""

import logging
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import merger
from .accounts import AccountStore
from .apikeys import ApiAccountProvider
from .credentials import CredentialStore, IdentityResult
from .credentials.models import DBUser
from .domain import AccountState, ApiAccount, ApiAccountType, \
    ExtendedUser, FailureKind, SecurityResult, UserDetails, \
    UserSearchRequest, UserSearchResponse
from .exceptions import UnknownRole, ValidationError
from .policy import AccessPolicy

logger = logging.getLogger(__name__)

USER_NOT_FOUND = 'User not found.'
FORBIDDEN = 'It is forbidden to edit this user.'
ACCOUNT_NOT_FOUND = 'Account not found.'
USER_NAME_IMMUTABLE = 'User name cannot be changed.'


class SecurityService:
    """
    Public entry point for user management.

    Parameters
    ----------
    credential_stores : callable
        Returns a new :class:`.CredentialStore` handle on each call.
    account_stores : callable
        Returns a new :class:`.AccountStore` handle on each call.
    api_account_provider : :class:`.ApiAccountProvider`
    access_policy : :class:`.AccessPolicy` or None
        If ``None``, every account is editable.

    """

    def __init__(self, credential_stores: Callable[[], CredentialStore],
                 account_stores: Callable[[], AccountStore],
                 api_account_provider: ApiAccountProvider,
                 access_policy: Optional[AccessPolicy] = None) -> None:
        self._credential_stores = credential_stores
        self._account_stores = account_stores
        self._api_account_provider = api_account_provider
        self._access_policy = access_policy or AccessPolicy()

    # Lookups.

    def find_by_name(self, user_name: str,
                     details: UserDetails) -> Optional[ExtendedUser]:
        with self._credential_stores() as credentials:
            return self._get_user_extended(
                credentials.find_by_name(user_name), details
            )

    def find_by_id(self, user_id: str,
                   details: UserDetails) -> Optional[ExtendedUser]:
        with self._credential_stores() as credentials:
            return self._get_user_extended(
                credentials.find_by_id(user_id), details
            )

    def find_by_email(self, email: str,
                      details: UserDetails) -> Optional[ExtendedUser]:
        with self._credential_stores() as credentials:
            return self._get_user_extended(
                credentials.find_by_email(email), details
            )

    def find_by_login(self, login_provider: str, provider_key: str,
                      details: UserDetails) -> Optional[ExtendedUser]:
        with self._credential_stores() as credentials:
            return self._get_user_extended(
                credentials.find_by_login(login_provider, provider_key),
                details
            )

    # Writes.

    def create(self, user: Optional[ExtendedUser]) -> SecurityResult:
        """
        Create the credential record, then the account record.

        The new account is always :attr:`.AccountState.APPROVED`. If
        ``user.password`` is not set, the user can only sign in with an
        external login.

        Raises
        ------
        :class:`.ValidationError`
            If ``user`` is ``None``.

        """
        if user is None:
            raise ValidationError('user is required')

        with self._credential_stores() as credentials:
            db_user = merger.to_credential_record(user)
            if user.password:
                identity_result = credentials.create(db_user, user.password)
            else:
                identity_result = credentials.create(db_user)
        result = _from_identity_result(identity_result)
        if not result.succeeded:
            logger.info('Could not create credentials for %s: %s',
                        user.user_name, result.errors)
            return result

        try:
            with self._account_stores() as accounts:
                role_ids, role_names = merger.role_keys(user.roles)
                roles = accounts.get_roles(role_ids, role_names)
                db_account = merger.to_account_record(
                    user._replace(user_state=AccountState.APPROVED), roles
                )
                accounts.add(db_account)
                accounts.commit()
        except (SQLAlchemyError, UnknownRole) as e:
            logger.exception('Created credentials for %s but not the'
                             ' account', user.user_name)
            return SecurityResult.failure(FailureKind.INCONSISTENCY, str(e))
        logger.info('Created user %s', user.user_name)
        return result

    def update(self, user: Optional[ExtendedUser]) -> SecurityResult:
        """
        Patch the credential record, then the account record.

        Only fields present on ``user`` are changed. If the account record is
        missing or cannot be written, the credential changes stay committed
        and the result is of kind :attr:`.FailureKind.INCONSISTENCY`.

        Raises
        ------
        :class:`.ValidationError`
            If ``user`` is ``None``.

        """
        if user is None:
            raise ValidationError('user is required')

        with self._credential_stores() as credentials:
            db_user = credentials.find_by_id(user.id)
            result = self._validate_user(db_user)
            if not result.succeeded:
                return result
            user_name = db_user.user_name
            if user.user_name is not None and user.user_name != user_name:
                return SecurityResult.failure(FailureKind.VALIDATION,
                                              USER_NAME_IMMUTABLE)
            merger.patch_credential_record(user, db_user)
            result = _from_identity_result(credentials.update(db_user))
        if not result.succeeded:
            return result

        try:
            with self._account_stores() as accounts:
                db_account = accounts.get_account_by_name(user_name,
                                                          UserDetails.FULL)
                if db_account is None:
                    logger.warning('Updated credentials of %s, which has no'
                                   ' account', user_name)
                    return SecurityResult.failure(FailureKind.INCONSISTENCY,
                                                  ACCOUNT_NOT_FOUND)
                roles = None
                if user.roles is not None:
                    roles = accounts.get_roles(*merger.role_keys(user.roles))
                merger.patch_account_record(user, db_account, roles)
                accounts.commit()
        except (SQLAlchemyError, UnknownRole) as e:
            logger.exception('Updated credentials of %s but not the account',
                             user_name)
            return SecurityResult.failure(FailureKind.INCONSISTENCY, str(e))
        return result

    def delete(self, names: Iterable[str]) -> None:
        """
        Delete the credential and account records of each user in ``names``.

        Protected and unknown users are skipped. Each name is handled on its
        own; a failure is logged and the remaining names are still processed.
        """
        for name in names:
            if not self._access_policy.is_editable(name):
                logger.debug('Not deleting protected user %s', name)
                continue
            try:
                self._delete_one(name)
            except SQLAlchemyError:
                logger.exception('Failed to delete user %s', name)

    def _delete_one(self, name: str) -> None:
        with self._credential_stores() as credentials:
            db_user = credentials.find_by_name(name)
            if db_user is None:
                return
            # The store may match names case-insensitively.
            user_name = db_user.user_name
            if not self._access_policy.is_editable(user_name):
                logger.debug('Not deleting protected user %s', user_name)
                return
            identity_result = credentials.delete(db_user)
        if not identity_result.succeeded:
            logger.error('Could not delete credentials of %s: %s', user_name,
                         identity_result.errors)
            return

        with self._account_stores() as accounts:
            db_account = accounts.get_account_by_name(user_name,
                                                      UserDetails.REDUCED)
            if db_account is not None:
                accounts.remove(db_account)
                accounts.commit()
        logger.info('Deleted user %s', user_name)

    # Credentials.

    def change_password(self, name: str, old_password: str,
                        new_password: str) -> SecurityResult:
        with self._credential_stores() as credentials:
            db_user = credentials.find_by_name(name)
            result = self._validate_user(db_user)
            if result.succeeded:
                result = _from_identity_result(credentials.change_password(
                    db_user.id, old_password, new_password
                ))
            return result

    def reset_password_by_name(self, name: str,
                               new_password: str) -> SecurityResult:
        """Set a new password without proof of the old one."""
        with self._credential_stores() as credentials:
            db_user = credentials.find_by_name(name)
            result = self._validate_user(db_user)
            if result.succeeded:
                result = _from_identity_result(
                    credentials.reset_password(db_user.id, new_password)
                )
            return result

    def reset_password_by_token(self, user_id: str, token: str,
                                new_password: str) -> SecurityResult:
        """Set a new password using a token from
        :meth:`generate_password_reset_token`."""
        with self._credential_stores() as credentials:
            db_user = credentials.find_by_id(user_id)
            result = self._validate_user(db_user)
            if result.succeeded:
                result = _from_identity_result(
                    credentials.reset_password_with_token(user_id, token,
                                                          new_password)
                )
            return result

    def generate_password_reset_token(self, user_id: str) -> Optional[str]:
        with self._credential_stores() as credentials:
            return credentials.generate_password_reset_token(user_id)

    # Search.

    def search(self, request: Optional[UserSearchRequest] = None) \
            -> UserSearchResponse:
        """
        Page through users ordered by username.

        The keyword matches any part of the username, ignoring case. Paging
        is applied to credential records; accounts are joined afterwards,
        one lookup per user on the page.
        """
        request = request or UserSearchRequest()
        if request.skip_count < 0 or request.take_count < 0:
            raise ValidationError('skip_count and take_count must not be'
                                  ' negative')

        with self._credential_stores() as credentials:
            query = credentials.users
            if request.keyword is not None:
                query = query.filter(DBUser.user_name.icontains(
                    request.keyword, autoescape=True
                ))
            total_count = query.count()
            names = [
                user_name for user_name, in query
                .with_entities(DBUser.user_name)
                .order_by(DBUser.user_name)
                .offset(request.skip_count)
                .limit(request.take_count)
            ]

        users = []
        for name in names:
            user = self.find_by_name(name, UserDetails.REDUCED)
            if user is not None:
                users.append(user)
        return UserSearchResponse(total_count=total_count, users=users)

    # API accounts.

    def generate_api_account(self,
                             api_account_type: ApiAccountType) -> ApiAccount:
        credentials = self._api_account_provider \
            .generate_api_credentials(api_account_type)
        return ApiAccount(app_id=credentials.app_id,
                          secret_key=credentials.secret_key,
                          api_account_type=credentials.api_account_type)

    # Helpers.

    def _validate_user(self, db_user: Optional[DBUser]) -> SecurityResult:
        if db_user is None:
            return SecurityResult.failure(FailureKind.NOT_FOUND,
                                          USER_NOT_FOUND)
        if not self._access_policy.is_editable(db_user.user_name):
            return SecurityResult.failure(FailureKind.FORBIDDEN, FORBIDDEN)
        return SecurityResult.success()

    def _get_user_extended(self, db_user: Optional[DBUser],
                           details: UserDetails) -> Optional[ExtendedUser]:
        if db_user is None:
            return None
        with self._account_stores() as accounts:
            db_account = accounts.get_account_by_name(db_user.user_name,
                                                      details)
            if db_account is not None \
                    and db_account.user_name != db_user.user_name:
                logger.warning('Account %s does not match user %s; ignoring'
                               ' it', db_account.id, db_user.user_name)
                db_account = None
            return merger.to_extended_user(db_user, db_account, details)


def _from_identity_result(result: IdentityResult) -> SecurityResult:
    if result.succeeded:
        return SecurityResult.success()
    return SecurityResult.failure(FailureKind.STORE_FAILURE,
                                  *(result.errors or ['Unknown error.']))
