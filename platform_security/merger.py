"""
Map users between the credential store, the account store and callers.

A :class:`.ExtendedUser` is split into a :class:`.credentials.models.DBUser`
and a :class:`.accounts.models.DBAccount` on write, and joined back on
read. Updates are patches: only fields that are present (not ``None``) on
the incoming user overwrite the stored values.
"""

import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from pytz import UTC

from . import domain
from .accounts.models import DBAccount, DBApiAccount, DBRole, \
    DBRoleAssignment
from .credentials.models import DBUser, DBUserLogin
from .credentials.store import as_utc

CREDENTIAL_FIELDS = (
    'email',
    'email_confirmed',
    'phone_number',
    'phone_number_confirmed',
    'two_factor_enabled',
    'lockout_enabled',
    'lockout_end_date',
    'access_failed_count',
)
"""Credential fields that callers may change. ``user_name`` never changes."""

ACCOUNT_FIELDS = (
    'store_id',
    'member_id',
    'is_administrator',
    'user_type',
)
"""Account fields that callers may change. State has its own transitions."""

SECRET_FIELDS = ('password_hash', 'security_stamp')


def to_credential_record(user: domain.ExtendedUser) -> DBUser:
    """Build a new credential record from ``user``."""
    db_user = DBUser(
        id=user.id,
        user_name=user.user_name,
        email=user.email,
        email_confirmed=bool(user.email_confirmed),
        phone_number=user.phone_number,
        phone_number_confirmed=bool(user.phone_number_confirmed),
        two_factor_enabled=bool(user.two_factor_enabled),
        lockout_enabled=bool(user.lockout_enabled),
        lockout_end_date=user.lockout_end_date,
        access_failed_count=user.access_failed_count or 0,
    )
    db_user.logins = [
        DBUserLogin(login_provider=login.login_provider,
                    provider_key=login.provider_key)
        for login in user.logins or []
    ]
    return db_user


def to_account_record(user: domain.ExtendedUser,
                      roles: Iterable[DBRole] = ()) -> DBAccount:
    """
    Build a new account record from ``user``.

    ``roles`` are the already-loaded roles named by ``user.roles``.
    """
    state = user.user_state or domain.AccountState.APPROVED
    db_account = DBAccount(
        id=str(uuid.uuid4()),
        user_name=user.user_name,
        store_id=user.store_id,
        member_id=user.member_id,
        is_administrator=bool(user.is_administrator),
        user_type=user.user_type,
        account_state=state.value,
        created_date=datetime.now(tz=UTC),
    )
    db_account.role_assignments = [DBRoleAssignment(role=role)
                                   for role in roles]
    db_account.api_accounts = [_to_api_account_record(api_account)
                               for api_account in user.api_accounts or []]
    return db_account


def role_keys(roles: Optional[Iterable[domain.Role]]) \
        -> Tuple[List[str], List[str]]:
    """Ids and names by which ``roles`` should be looked up."""
    ids: List[str] = []
    names: List[str] = []
    for role in roles or []:
        if role.id:
            ids.append(role.id)
        else:
            names.append(role.name)
    return ids, names


def to_extended_user(db_user: DBUser, db_account: Optional[DBAccount],
                     details: domain.UserDetails) -> domain.ExtendedUser:
    """
    Join a credential record and its account record.

    ``db_account`` may be ``None``, in which case account fields are left at
    their defaults. The result is redacted according to ``details``.
    """
    user = domain.ExtendedUser(
        id=db_user.id,
        user_name=db_user.user_name,
        email=db_user.email,
        email_confirmed=db_user.email_confirmed,
        password_hash=db_user.password_hash,
        security_stamp=db_user.security_stamp,
        phone_number=db_user.phone_number,
        phone_number_confirmed=db_user.phone_number_confirmed,
        two_factor_enabled=db_user.two_factor_enabled,
        lockout_enabled=db_user.lockout_enabled,
        lockout_end_date=as_utc(db_user.lockout_end_date),
        access_failed_count=db_user.access_failed_count,
        logins=[domain.UserLogin(login.login_provider, login.provider_key)
                for login in db_user.logins],
    )
    if db_account is not None:
        user = user._replace(
            store_id=db_account.store_id,
            member_id=db_account.member_id,
            is_administrator=db_account.is_administrator,
            user_type=db_account.user_type,
            user_state=domain.AccountState(db_account.account_state),
        )
        if details is not domain.UserDetails.REDUCED:
            roles = [_to_role(assignment.role)
                     for assignment in db_account.role_assignments]
            user = user._replace(
                roles=roles,
                permissions=sorted({permission for role in roles
                                    for permission in role.permissions}),
                api_accounts=[_to_api_account(db_api_account)
                              for db_api_account in db_account.api_accounts],
            )
    return redact(user, details)


def redact(user: domain.ExtendedUser,
           details: domain.UserDetails) -> domain.ExtendedUser:
    """Drop secrets unless ``details`` is :attr:`UserDetails.EXPORT`."""
    if details is domain.UserDetails.EXPORT:
        return user
    return user._replace(**{field: None for field in SECRET_FIELDS})


def patch_credential_record(user: domain.ExtendedUser,
                            db_user: DBUser) -> None:
    """Copy the present credential fields of ``user`` onto ``db_user``."""
    for field in CREDENTIAL_FIELDS:
        value = getattr(user, field)
        if value is not None:
            setattr(db_user, field, value)

    if user.logins is not None:
        wanted = {(login.login_provider, login.provider_key)
                  for login in user.logins}
        extant = {(login.login_provider, login.provider_key): login
                  for login in db_user.logins}
        for key, db_login in extant.items():
            if key not in wanted:
                db_user.logins.remove(db_login)
        for provider, key in sorted(wanted - set(extant)):
            db_user.logins.append(DBUserLogin(login_provider=provider,
                                              provider_key=key))


def patch_account_record(user: domain.ExtendedUser, db_account: DBAccount,
                         roles: Optional[Iterable[DBRole]] = None) -> None:
    """
    Copy the present account fields of ``user`` onto ``db_account``.

    Role assignments are replaced by ``roles`` when ``user.roles`` is
    present. API accounts are matched by id: unknown ones are added, missing
    ones are removed and matching ones are updated.
    """
    for field in ACCOUNT_FIELDS:
        value = getattr(user, field)
        if value is not None:
            setattr(db_account, field, value)

    if user.roles is not None:
        wanted = {role.id: role for role in roles or []}
        for assignment in list(db_account.role_assignments):
            if assignment.role_id not in wanted:
                db_account.role_assignments.remove(assignment)
        assigned = {a.role_id for a in db_account.role_assignments}
        for role_id, role in wanted.items():
            if role_id not in assigned:
                db_account.role_assignments.append(DBRoleAssignment(role=role))

    if user.api_accounts is not None:
        incoming = {api.id: api for api in user.api_accounts if api.id}
        for db_api_account in list(db_account.api_accounts):
            if db_api_account.id not in incoming:
                db_account.api_accounts.remove(db_api_account)
            else:
                api = incoming[db_api_account.id]
                db_api_account.name = api.name
                db_api_account.app_id = api.app_id
                db_api_account.secret_key = api.secret_key
                db_api_account.api_account_type = api.api_account_type.value
                db_api_account.is_active = api.is_active
        extant = {db_api.id for db_api in db_account.api_accounts}
        for api in user.api_accounts:
            if not api.id or api.id not in extant:
                db_account.api_accounts.append(_to_api_account_record(api))

    db_account.modified_date = datetime.now(tz=UTC)


def _to_role(db_role: DBRole) -> domain.Role:
    return domain.Role(
        id=db_role.id,
        name=db_role.name,
        description=db_role.description,
        permissions=sorted(p.permission_id for p in db_role.permissions),
    )


def _to_api_account(db_api_account: DBApiAccount) -> domain.ApiAccount:
    return domain.ApiAccount(
        id=db_api_account.id,
        name=db_api_account.name,
        app_id=db_api_account.app_id,
        secret_key=db_api_account.secret_key,
        api_account_type=domain.ApiAccountType(
            db_api_account.api_account_type),
        is_active=db_api_account.is_active,
    )


def _to_api_account_record(api: domain.ApiAccount) -> DBApiAccount:
    return DBApiAccount(
        id=api.id or str(uuid.uuid4()),
        name=api.name,
        app_id=api.app_id,
        secret_key=api.secret_key,
        api_account_type=api.api_account_type.value,
        is_active=api.is_active,
    )
