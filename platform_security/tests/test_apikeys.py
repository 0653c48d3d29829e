"""Tests for :mod:`platform_security.apikeys`."""

import string
from unittest import TestCase, mock

from ..apikeys import ApiAccountProvider, ApiCredentials
from ..domain import ApiAccount, ApiAccountType
from ..service import SecurityService


class TestApiAccountProvider(TestCase):
    """Credential pairs are random and shaped by type."""

    def test_hmac(self):
        creds = ApiAccountProvider().generate_api_credentials(
            ApiAccountType.HMAC
        )
        self.assertEqual(creds.api_account_type, ApiAccountType.HMAC)
        self.assertEqual(len(creds.secret_key), 128)
        self.assertTrue(set(creds.secret_key) <= set(string.hexdigits))

    def test_simple(self):
        creds = ApiAccountProvider().generate_api_credentials(
            ApiAccountType.SIMPLE
        )
        self.assertEqual(creds.api_account_type, ApiAccountType.SIMPLE)
        self.assertNotIn('/', creds.secret_key)
        self.assertNotIn('+', creds.secret_key)

    def test_unique(self):
        provider = ApiAccountProvider()
        pairs = [provider.generate_api_credentials(ApiAccountType.SIMPLE)
                 for _ in range(10)]
        self.assertEqual(len({p.app_id for p in pairs}), 10)
        self.assertEqual(len({p.secret_key for p in pairs}), 10)

    def test_unsupported(self):
        with self.assertRaises(ValueError):
            ApiAccountProvider().generate_api_credentials('Simple')


class TestGenerateApiAccount(TestCase):
    """The service only maps the provider's output."""

    def test_maps_provider_output(self):
        provider = mock.MagicMock(spec=ApiAccountProvider)
        provider.generate_api_credentials.return_value = ApiCredentials(
            app_id='app', secret_key='secret',
            api_account_type=ApiAccountType.HMAC
        )
        credential_stores = mock.MagicMock()
        account_stores = mock.MagicMock()
        service = SecurityService(credential_stores, account_stores,
                                  provider)

        account = service.generate_api_account(ApiAccountType.HMAC)

        self.assertEqual(account, ApiAccount(
            app_id='app', secret_key='secret',
            api_account_type=ApiAccountType.HMAC
        ))
        provider.generate_api_credentials.assert_called_once_with(
            ApiAccountType.HMAC
        )
        credential_stores.assert_not_called()
        account_stores.assert_not_called()
