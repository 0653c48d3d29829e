"""Generation of API credentials."""

import secrets
import uuid
from typing import NamedTuple

from .domain import ApiAccountType

HMAC_SECRET_BYTES = 64
SIMPLE_SECRET_BYTES = 32


class ApiCredentials(NamedTuple):
    """Freshly generated credential pair, as produced by the provider."""

    app_id: str
    secret_key: str
    api_account_type: ApiAccountType


class ApiAccountProvider:
    """Issues credential pairs for API accounts."""

    def generate_api_credentials(self,
                                 api_account_type: ApiAccountType) \
            -> ApiCredentials:
        """
        Generate a new app id and secret.

        ``HMAC`` secrets are hex encoded so that they can be used as signing
        keys; ``SIMPLE`` secrets are URL-safe so that they can be sent as-is
        in a header or query string.
        """
        if api_account_type is ApiAccountType.HMAC:
            secret = secrets.token_hex(HMAC_SECRET_BYTES)
        elif api_account_type is ApiAccountType.SIMPLE:
            secret = secrets.token_urlsafe(SIMPLE_SECRET_BYTES)
        else:
            raise ValueError(f'Unsupported API account type: {api_account_type}')
        return ApiCredentials(app_id=uuid.uuid4().hex, secret_key=secret,
                              api_account_type=api_account_type)
