"""Defines user and account concepts shared by the security services."""

from typing import Any, List, NamedTuple, Optional
from datetime import datetime
from enum import Enum

from . import config


class AccountState(Enum):
    """Lifecycle state of a business account."""

    APPROVED = 'Approved'
    PENDING_APPROVAL = 'PendingApproval'
    REJECTED = 'Rejected'


class UserDetails(Enum):
    """
    How much of a :class:`.ExtendedUser` should be loaded.

    ``REDUCED`` loads the account record without its associations.
    ``FULL`` also loads roles, permissions and API accounts. ``EXPORT`` is
    ``FULL`` without redaction of the password hash and security stamp.
    """

    REDUCED = 'Reduced'
    FULL = 'Full'
    EXPORT = 'Export'


class ApiAccountType(Enum):
    """Kinds of API credentials that can be issued for an account."""

    SIMPLE = 'Simple'
    HMAC = 'Hmac'


class FailureKind(Enum):
    """Why a :class:`.SecurityResult` did not succeed."""

    VALIDATION = 'validation'
    NOT_FOUND = 'not_found'
    FORBIDDEN = 'forbidden'
    STORE_FAILURE = 'store_failure'
    INCONSISTENCY = 'inconsistency'


class UserLogin(NamedTuple):
    """Binding of a user to an external login provider."""

    login_provider: str
    """Name of the external provider, e.g. ``Google``."""

    provider_key: str
    """The user's identifier at the provider."""


class Role(NamedTuple):
    """A named set of permissions that can be assigned to an account."""

    name: str
    id: Optional[str] = None
    description: Optional[str] = None
    permissions: List[str] = []


class ApiAccount(NamedTuple):
    """API credential pair issued for an account."""

    app_id: str
    """Public identifier presented by the API client."""

    secret_key: str
    """Shared secret; only ever returned to the caller that generated it."""

    api_account_type: ApiAccountType = ApiAccountType.SIMPLE
    """The kind of credentials in :attr:`secret_key`."""

    id: Optional[str] = None
    """Identifier of the persisted API account, if it has been stored."""

    name: Optional[str] = None
    """Human-friendly label."""

    is_active: bool = True
    """Inactive API accounts are kept but cannot authenticate."""


class ExtendedUser(NamedTuple):
    """
    A user as seen by callers of :class:`.SecurityService`.

    This is the union of the credential record and the account record. It
    is assembled on read and decomposed again on write; it is never stored
    as one object.

    Fields left as ``None`` are considered absent. When used to update a
    user, absent fields leave the stored values untouched.
    """

    user_name: Optional[str] = None
    """Join key between the credential store and the account store."""

    email: Optional[str] = None
    id: Optional[str] = None
    """Identifier of the credential record."""

    email_confirmed: Optional[bool] = None
    password_hash: Optional[str] = None
    """Only populated at :attr:`UserDetails.EXPORT`."""

    security_stamp: Optional[str] = None
    """Only populated at :attr:`UserDetails.EXPORT`."""

    phone_number: Optional[str] = None
    phone_number_confirmed: Optional[bool] = None
    two_factor_enabled: Optional[bool] = None
    lockout_enabled: Optional[bool] = None
    lockout_end_date: Optional[datetime] = None
    access_failed_count: Optional[int] = None
    logins: Optional[List[UserLogin]] = None

    store_id: Optional[str] = None
    member_id: Optional[str] = None
    is_administrator: Optional[bool] = None
    user_type: Optional[str] = None
    user_state: Optional[AccountState] = None
    roles: Optional[List[Role]] = None
    permissions: Optional[List[str]] = None
    api_accounts: Optional[List[ApiAccount]] = None

    password: Optional[str] = None
    """Write-only. Used when creating a user; never returned."""


class SecurityResult(NamedTuple):
    """Outcome of a mutating security operation."""

    succeeded: bool = False
    errors: List[str] = []
    """Human-readable messages, non-empty iff :attr:`succeeded` is false."""

    kind: Optional[FailureKind] = None
    """Category of the failure, ``None`` on success."""

    @classmethod
    def success(cls) -> 'SecurityResult':
        """A successful result."""
        return cls(succeeded=True, errors=[])

    @classmethod
    def failure(cls, kind: FailureKind, *errors: str) -> 'SecurityResult':
        """A failed result with at least one error message."""
        if not errors:
            raise ValueError('A failed result needs at least one error')
        return cls(succeeded=False, errors=list(errors), kind=kind)


class UserSearchRequest(NamedTuple):
    """Paged query over users by username keyword."""

    keyword: Optional[str] = None
    """Substring of the username; case-insensitive. ``None`` matches all."""

    skip_count: int = 0
    take_count: int = config.SEARCH_DEFAULT_TAKE


class UserSearchResponse(NamedTuple):
    """A page of users and the size of the whole filtered set."""

    total_count: int = 0
    users: List[ExtendedUser] = []


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    Child NamedTuples are converted recursively, enums are reduced to their
    values and datetimes to ISO-8601 strings, so that the result can be
    serialized to JSON directly.

    Parameters
    ----------
    obj : tuple
        A NamedTuple instance.

    Returns
    -------
    dict

    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}
    data = obj._asdict()  # type: ignore

    def _cast(obj: Any) -> Any:
        if hasattr(obj, '_asdict'):
            obj = to_dict(obj)
        elif isinstance(obj, Enum):
            obj = obj.value
        elif isinstance(obj, datetime):
            obj = obj.isoformat()
        elif isinstance(obj, list):
            obj = [_cast(o) for o in obj]
        return obj

    return {key: _cast(value) for key, value in data.items()}
