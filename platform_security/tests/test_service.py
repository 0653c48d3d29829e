"""Tests for :mod:`platform_security.service`."""

from contextlib import ExitStack
from datetime import datetime
from unittest import TestCase, mock

from pytz import UTC
from sqlalchemy.exc import OperationalError

from .. import merger
from ..accounts import AccountStore
from ..apikeys import ApiAccountProvider
from ..credentials import CredentialStore
from ..domain import AccountState, ApiAccountType, ExtendedUser, \
    FailureKind, Role, UserDetails, UserLogin
from ..exceptions import ValidationError
from ..service import ACCOUNT_NOT_FOUND, FORBIDDEN, SecurityService, \
    USER_NAME_IMMUTABLE, USER_NOT_FOUND
from .util import temporary_stores

PASSWORD = 'correct horse'


def _user(name: str, **kwargs) -> ExtendedUser:
    data = dict(user_name=name, email=f'{name}@example.com',
                password=PASSWORD)
    data.update(kwargs)
    return ExtendedUser(**data)


def _store_error() -> OperationalError:
    return OperationalError('COMMIT', {}, Exception('database is gone'))


class ServiceTestCase(TestCase):
    """Gives each test a service over fresh stores; ``admin`` is protected."""

    def setUp(self):
        stack = ExitStack()
        self.addCleanup(stack.close)
        self.stores = stack.enter_context(
            temporary_stores(non_editable_users=['admin'])
        )
        self.service = self.stores.service

    def get_account(self, name):
        with self.stores.account_store() as accounts:
            db_account = accounts.get_account_by_name(name,
                                                      UserDetails.REDUCED)
            if db_account is None:
                return None
            return dict(store_id=db_account.store_id,
                        member_id=db_account.member_id,
                        account_state=db_account.account_state,
                        modified_date=db_account.modified_date)

    def get_credentials(self, name):
        with self.stores.credential_store() as credentials:
            db_user = credentials.find_by_name(name)
            if db_user is None:
                return None
            return dict(id=db_user.id, email=db_user.email,
                        phone_number=db_user.phone_number,
                        password_hash=db_user.password_hash,
                        security_stamp=db_user.security_stamp)

    def add_role(self, name, permissions):
        with self.stores.account_store() as accounts:
            role_id = accounts.add_role(name, permissions).id
            accounts.commit()
        return role_id


class TestCreate(ServiceTestCase):
    """Tests for :meth:`.SecurityService.create`."""

    def test_create_none(self):
        """Creating nothing fails before any store is opened."""
        credential_stores = mock.MagicMock()
        account_stores = mock.MagicMock()
        service = SecurityService(credential_stores, account_stores,
                                  ApiAccountProvider())
        with self.assertRaises(ValidationError):
            service.create(None)
        credential_stores.assert_not_called()
        account_stores.assert_not_called()

    def test_round_trip(self):
        """A created user can be read back, without its secrets."""
        user = _user('jdoe', phone_number='555-0100', store_id='electronics',
                     member_id='m-42', user_type='Customer',
                     is_administrator=False,
                     lockout_end_date=datetime(2030, 1, 1, 12, tzinfo=UTC))
        result = self.service.create(user)
        self.assertTrue(result.succeeded)
        self.assertEqual(result.errors, [])

        found = self.service.find_by_name('jdoe', UserDetails.FULL)
        self.assertIsNotNone(found.id)
        for field in ('user_name', 'email', 'phone_number', 'store_id',
                      'member_id', 'user_type', 'is_administrator',
                      'lockout_end_date'):
            self.assertEqual(getattr(found, field), getattr(user, field),
                             f'{field} should survive the round trip')
        self.assertLess(datetime.now(tz=UTC), found.lockout_end_date)
        self.assertEqual(found.user_state, AccountState.APPROVED)
        self.assertIsNone(found.password_hash)
        self.assertIsNone(found.security_stamp)
        self.assertIsNone(found.password, 'Password is never returned')
        self.assertEqual(found.roles, [])
        self.assertEqual(found.api_accounts, [])

    def test_export_keeps_secrets(self):
        """Only the export detail level returns the hash and stamp."""
        self.service.create(_user('jdoe'))

        reduced = self.service.find_by_name('jdoe', UserDetails.REDUCED)
        self.assertIsNone(reduced.password_hash)
        self.assertIsNone(reduced.security_stamp)
        self.assertIsNone(reduced.roles, 'Reduced omits associations')

        exported = self.service.find_by_name('jdoe', UserDetails.EXPORT)
        stored = self.get_credentials('jdoe')
        self.assertEqual(exported.password_hash, stored['password_hash'])
        self.assertEqual(exported.security_stamp, stored['security_stamp'])
        self.assertNotEqual(exported.password_hash, PASSWORD)

    def test_create_forces_approved_state(self):
        """The requested account state is ignored on creation."""
        self.service.create(_user('jdoe', user_state=AccountState.REJECTED))
        self.assertEqual(self.get_account('jdoe')['account_state'],
                         AccountState.APPROVED.value)

    def test_create_without_password(self):
        """A user may only have an external login."""
        login = UserLogin('Google', 'g-123')
        result = self.service.create(_user('jdoe', password=None,
                                           logins=[login]))
        self.assertTrue(result.succeeded)

        found = self.service.find_by_login('Google', 'g-123',
                                           UserDetails.EXPORT)
        self.assertEqual(found.user_name, 'jdoe')
        self.assertEqual(found.logins, [login])
        self.assertIsNone(found.password_hash)
        self.assertIsNotNone(self.get_account('jdoe'))

    def test_credential_failure_writes_no_account(self):
        """If the credential store rejects the user, no account is added."""
        result = self.service.create(_user('jdoe', password='abc'))
        self.assertFalse(result.succeeded)
        self.assertEqual(result.kind, FailureKind.STORE_FAILURE)
        self.assertEqual(result.errors,
                         ['Passwords must be at least 6 characters.'])
        self.assertIsNone(self.get_credentials('jdoe'))
        self.assertIsNone(self.get_account('jdoe'))

    def test_duplicate_username(self):
        """The store's error is passed through verbatim."""
        self.service.create(_user('jdoe', store_id='first'))
        result = self.service.create(_user('jdoe', email='other@example.com',
                                           store_id='second'))
        self.assertFalse(result.succeeded)
        self.assertEqual(result.errors, ['Name jdoe is already taken.'])
        self.assertEqual(self.get_account('jdoe')['store_id'], 'first')

    def test_account_commit_fails(self):
        """The credential record is left behind when the account fails."""
        with mock.patch.object(AccountStore, 'commit',
                               side_effect=_store_error()):
            result = self.service.create(_user('jdoe'))

        self.assertFalse(result.succeeded)
        self.assertEqual(result.kind, FailureKind.INCONSISTENCY)
        self.assertIsNotNone(self.get_credentials('jdoe'))
        self.assertIsNone(self.get_account('jdoe'))

    def test_create_with_roles(self):
        """Roles are assigned by name and returned with their permissions."""
        self.add_role('editor', ['content:read', 'content:update'])
        self.add_role('viewer', ['content:read'])
        self.service.create(_user('jdoe', roles=[Role('editor'),
                                                 Role('viewer')]))

        found = self.service.find_by_name('jdoe', UserDetails.FULL)
        self.assertEqual(sorted(role.name for role in found.roles),
                         ['editor', 'viewer'])
        self.assertEqual(found.permissions,
                         ['content:read', 'content:update'])

    def test_create_with_unknown_role(self):
        """An unknown role leaves the credential record without account."""
        result = self.service.create(_user('jdoe', roles=[Role('nope')]))
        self.assertEqual(result.kind, FailureKind.INCONSISTENCY)
        self.assertIsNotNone(self.get_credentials('jdoe'))
        self.assertIsNone(self.get_account('jdoe'))


class TestUpdate(ServiceTestCase):
    """Tests for :meth:`.SecurityService.update`."""

    def setUp(self):
        super().setUp()
        self.service.create(_user('jdoe', store_id='electronics',
                                  member_id='m-1'))
        self.service.create(_user('admin'))
        self.user_id = self.get_credentials('jdoe')['id']

    def test_update_none(self):
        with self.assertRaises(ValidationError):
            self.service.update(None)

    def test_patch_present_fields_only(self):
        """Fields that are not set on the update are left alone."""
        result = self.service.update(ExtendedUser(id=self.user_id,
                                                  phone_number='555-0199',
                                                  member_id='m-2'))
        self.assertTrue(result.succeeded)

        found = self.service.find_by_id(self.user_id, UserDetails.FULL)
        self.assertEqual(found.phone_number, '555-0199')
        self.assertEqual(found.member_id, 'm-2')
        self.assertEqual(found.email, 'jdoe@example.com')
        self.assertEqual(found.store_id, 'electronics')
        self.assertIsNotNone(self.get_account('jdoe')['modified_date'])

    def test_update_unknown_user(self):
        result = self.service.update(ExtendedUser(id='nope', email='x@y.z'))
        self.assertEqual(result.kind, FailureKind.NOT_FOUND)
        self.assertEqual(result.errors, [USER_NOT_FOUND])

    def test_update_protected_user(self):
        """Protected users are left unchanged in both stores."""
        admin_id = self.get_credentials('admin')['id']
        before = (self.get_credentials('admin'), self.get_account('admin'))

        result = self.service.update(ExtendedUser(id=admin_id,
                                                  phone_number='555-0000',
                                                  store_id='hijacked'))
        self.assertEqual(result.kind, FailureKind.FORBIDDEN)
        self.assertEqual(result.errors, [FORBIDDEN])
        self.assertEqual((self.get_credentials('admin'),
                          self.get_account('admin')), before)

    def test_username_is_immutable(self):
        result = self.service.update(ExtendedUser(id=self.user_id,
                                                  user_name='janedoe'))
        self.assertEqual(result.kind, FailureKind.VALIDATION)
        self.assertEqual(result.errors, [USER_NAME_IMMUTABLE])
        self.assertIsNotNone(self.get_credentials('jdoe'))

    def test_missing_account_is_reported(self):
        """The credential change stays committed when the account is gone."""
        with self.stores.credential_store() as credentials:
            orphan = merger.to_credential_record(_user('orphan'))
            self.assertTrue(credentials.create(orphan, PASSWORD).succeeded)
            orphan_id = orphan.id

        result = self.service.update(ExtendedUser(id=orphan_id,
                                                  phone_number='555-0123'))
        self.assertFalse(result.succeeded)
        self.assertEqual(result.kind, FailureKind.INCONSISTENCY)
        self.assertEqual(result.errors, [ACCOUNT_NOT_FOUND])
        self.assertEqual(self.get_credentials('orphan')['phone_number'],
                         '555-0123', 'Credential write is not rolled back')

    def test_credential_failure_leaves_account(self):
        """If the credential write fails the account store is not touched."""
        result = self.service.update(ExtendedUser(id=self.user_id,
                                                  email='admin@example.com',
                                                  store_id='books'))
        self.assertEqual(result.kind, FailureKind.STORE_FAILURE)
        self.assertEqual(result.errors,
                         ["Email 'admin@example.com' is already taken."])
        self.assertEqual(self.get_account('jdoe')['store_id'], 'electronics')
        self.assertEqual(self.get_credentials('jdoe')['email'],
                         'jdoe@example.com')

    def test_account_commit_fails(self):
        with mock.patch.object(AccountStore, 'commit',
                               side_effect=_store_error()):
            result = self.service.update(ExtendedUser(id=self.user_id,
                                                      phone_number='1',
                                                      store_id='books'))
        self.assertEqual(result.kind, FailureKind.INCONSISTENCY)
        self.assertEqual(self.get_credentials('jdoe')['phone_number'], '1')
        self.assertEqual(self.get_account('jdoe')['store_id'], 'electronics')

    def test_replace_roles(self):
        """Roles on the update replace the assigned roles."""
        editor_id = self.add_role('editor', ['content:update'])
        self.add_role('viewer', ['content:read'])
        self.service.update(ExtendedUser(id=self.user_id,
                                         roles=[Role('viewer')]))
        self.service.update(ExtendedUser(id=self.user_id,
                                         roles=[Role('editor', id=editor_id)]))

        found = self.service.find_by_id(self.user_id, UserDetails.FULL)
        self.assertEqual([role.name for role in found.roles], ['editor'])
        self.assertEqual(found.permissions, ['content:update'])

        self.service.update(ExtendedUser(id=self.user_id, phone_number='2'))
        found = self.service.find_by_id(self.user_id, UserDetails.FULL)
        self.assertEqual([role.name for role in found.roles], ['editor'],
                         'Roles are kept when absent from the update')

    def test_api_accounts(self):
        """API accounts are added, updated and removed by id."""
        generated = self.service.generate_api_account(ApiAccountType.HMAC)
        self.service.update(ExtendedUser(id=self.user_id,
                                         api_accounts=[generated]))
        stored, = self.service.find_by_id(self.user_id,
                                          UserDetails.FULL).api_accounts
        self.assertEqual(stored.app_id, generated.app_id)
        self.assertIsNotNone(stored.id)

        self.service.update(ExtendedUser(
            id=self.user_id, api_accounts=[stored._replace(is_active=False)]
        ))
        updated, = self.service.find_by_id(self.user_id,
                                           UserDetails.FULL).api_accounts
        self.assertEqual(updated.id, stored.id)
        self.assertFalse(updated.is_active)

        self.service.update(ExtendedUser(id=self.user_id, api_accounts=[]))
        self.assertEqual(
            self.service.find_by_id(self.user_id,
                                    UserDetails.FULL).api_accounts, []
        )


class TestDelete(ServiceTestCase):
    """Tests for :meth:`.SecurityService.delete`."""

    def setUp(self):
        super().setUp()
        for name in ('admin', 'alice', 'bob'):
            self.service.create(_user(name))

    def test_protected_users_are_skipped(self):
        self.service.delete(['admin', 'alice'])

        self.assertIsNone(self.service.find_by_name('alice',
                                                    UserDetails.REDUCED))
        self.assertIsNone(self.get_credentials('alice'))
        self.assertIsNone(self.get_account('alice'))
        self.assertIsNotNone(self.get_credentials('admin'))
        self.assertIsNotNone(self.get_account('admin'))
        self.assertIsNotNone(self.get_account('bob'))

    def test_case_insensitive_store(self):
        """The stored username decides protection and the account deleted."""
        original = CredentialStore.find_by_name

        def ignoring_case(store, user_name):
            return original(store, user_name.lower() if user_name else None)

        with mock.patch.object(CredentialStore, 'find_by_name', autospec=True,
                               side_effect=ignoring_case):
            self.service.delete(['ADMIN', 'Alice'])

        self.assertIsNotNone(self.get_credentials('admin'))
        self.assertIsNotNone(self.get_account('admin'))
        self.assertIsNone(self.get_credentials('alice'))
        self.assertIsNone(self.get_account('alice'))

    def test_unknown_users_are_skipped(self):
        self.service.delete(['nobody', 'bob'])
        self.assertIsNone(self.get_credentials('bob'))
        self.assertIsNone(self.get_account('bob'))

    def test_one_failure_does_not_abort_the_batch(self):
        original = CredentialStore.delete

        def flaky(store, db_user):
            if db_user.user_name == 'alice':
                raise _store_error()
            return original(store, db_user)

        with mock.patch.object(CredentialStore, 'delete', autospec=True,
                               side_effect=flaky):
            self.service.delete(['alice', 'bob'])

        self.assertIsNotNone(self.get_credentials('alice'))
        self.assertIsNotNone(self.get_account('alice'))
        self.assertIsNone(self.get_credentials('bob'))
        self.assertIsNone(self.get_account('bob'))

    def test_credential_without_account(self):
        """A user without account can still be deleted."""
        with self.stores.credential_store() as credentials:
            credentials.create(merger.to_credential_record(_user('orphan')))
        self.service.delete(['orphan'])
        self.assertIsNone(self.get_credentials('orphan'))


class TestPasswords(ServiceTestCase):
    """Tests for password changes and resets."""

    def setUp(self):
        super().setUp()
        self.service.create(_user('jdoe', store_id='electronics'))
        self.service.create(_user('admin'))
        self.user_id = self.get_credentials('jdoe')['id']

    def test_change_password(self):
        stamp = self.get_credentials('jdoe')['security_stamp']
        result = self.service.change_password('jdoe', PASSWORD, 'new secret')
        self.assertTrue(result.succeeded)
        self.assertNotEqual(self.get_credentials('jdoe')['security_stamp'],
                            stamp)

        result = self.service.change_password('jdoe', PASSWORD, 'other one')
        self.assertFalse(result.succeeded, 'The old password is gone')

    def test_change_password_wrong_old_password(self):
        """The store rejects the change and the account is untouched."""
        before = self.get_account('jdoe')
        result = self.service.change_password('jdoe', 'wrong', 'new secret')
        self.assertEqual(result.kind, FailureKind.STORE_FAILURE)
        self.assertEqual(result.errors, ['Incorrect password.'])
        self.assertEqual(self.get_account('jdoe'), before)

    def test_change_password_policy(self):
        result = self.service.change_password('nobody', PASSWORD, 'x' * 8)
        self.assertEqual(result.errors, [USER_NOT_FOUND])
        result = self.service.change_password('admin', PASSWORD, 'x' * 8)
        self.assertEqual(result.errors, [FORBIDDEN])

    def test_reset_by_name(self):
        result = self.service.reset_password_by_name('jdoe', 'brand new')
        self.assertTrue(result.succeeded)
        self.assertTrue(
            self.service.change_password('jdoe', 'brand new',
                                         'newer still').succeeded
        )

    def test_reset_by_name_protected(self):
        result = self.service.reset_password_by_name('admin', 'brand new')
        self.assertEqual(result.kind, FailureKind.FORBIDDEN)

    def test_reset_by_token(self):
        """A reset token works exactly once."""
        token = self.service.generate_password_reset_token(self.user_id)
        self.assertTrue(token)

        result = self.service.reset_password_by_token(self.user_id, token,
                                                      'brand new')
        self.assertTrue(result.succeeded)

        result = self.service.reset_password_by_token(self.user_id, token,
                                                      'even newer')
        self.assertFalse(result.succeeded)
        self.assertEqual(result.errors, ['Invalid token.'])

    def test_reset_by_token_for_other_user(self):
        admin_id = self.get_credentials('admin')['id']
        token = self.service.generate_password_reset_token(self.user_id)
        result = self.service.reset_password_by_token(admin_id, token,
                                                      'brand new')
        self.assertEqual(result.kind, FailureKind.FORBIDDEN)

    def test_reset_token_for_unknown_user(self):
        self.assertIsNone(self.service.generate_password_reset_token('nope'))
        result = self.service.reset_password_by_token('nope', 'token',
                                                      'brand new')
        self.assertEqual(result.kind, FailureKind.NOT_FOUND)


class TestLookups(ServiceTestCase):
    """Tests for the ``find_by_*`` methods."""

    def setUp(self):
        super().setUp()
        self.service.create(_user('jdoe', store_id='electronics'))

    def test_find_by_email_and_id(self):
        by_email = self.service.find_by_email('jdoe@example.com',
                                              UserDetails.REDUCED)
        self.assertEqual(by_email.user_name, 'jdoe')
        by_id = self.service.find_by_id(by_email.id, UserDetails.REDUCED)
        self.assertEqual(by_id, by_email)

    def test_not_found(self):
        self.assertIsNone(self.service.find_by_name('nobody',
                                                    UserDetails.FULL))
        self.assertIsNone(self.service.find_by_email('no@body.org',
                                                     UserDetails.FULL))
        self.assertIsNone(self.service.find_by_login('Google', 'nope',
                                                     UserDetails.FULL))

    def test_credentials_without_account(self):
        """Account fields are empty when there is no account record."""
        with self.stores.credential_store() as credentials:
            credentials.create(merger.to_credential_record(_user('orphan')))
        found = self.service.find_by_name('orphan', UserDetails.FULL)
        self.assertEqual(found.user_name, 'orphan')
        self.assertIsNone(found.store_id)
        self.assertIsNone(found.user_state)
        self.assertIsNone(found.roles)

    def test_mismatched_account_is_ignored(self):
        """An account for a different username is never merged."""
        stranger = mock.MagicMock(user_name='someone-else', id='a-1')
        with mock.patch.object(AccountStore, 'get_account_by_name',
                               return_value=stranger):
            found = self.service.find_by_name('jdoe', UserDetails.FULL)
        self.assertEqual(found.user_name, 'jdoe')
        self.assertIsNone(found.store_id)
