"""
User management over a credential store and an account store.

See :class:`.service.SecurityService` for the operations, and
:func:`.factory.create_security_service` to build one from configuration.
"""

from .domain import AccountState, ApiAccount, ApiAccountType, \
    ExtendedUser, FailureKind, Role, SecurityResult, UserDetails, \
    UserLogin, UserSearchRequest, UserSearchResponse
from .exceptions import ValidationError
from .policy import AccessPolicy
from .service import SecurityService
