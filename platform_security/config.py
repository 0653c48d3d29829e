"""Configuration for the security services."""

import os

CREDENTIAL_DATABASE_URI = os.environ.get('CREDENTIAL_DATABASE_URI',
                                         'sqlite:///credentials.db')
"""Database holding credential records (passwords, logins, reset tokens)."""

ACCOUNT_DATABASE_URI = os.environ.get('ACCOUNT_DATABASE_URI',
                                      'sqlite:///accounts.db')
"""Database holding account records (state, roles, API accounts)."""

NON_EDITABLE_USERS = [
    name.strip() for name
    in os.environ.get('NON_EDITABLE_USERS', '').split(',')
    if name.strip()
]
"""Usernames that can be neither updated nor deleted."""

PASSWORD_MIN_LENGTH = int(os.environ.get('PASSWORD_MIN_LENGTH', '6'))

PASSWORD_RESET_TOKEN_LIFETIME = int(
    os.environ.get('PASSWORD_RESET_TOKEN_LIFETIME', '86400')
)
"""Seconds for which a password reset token can be used."""

SEARCH_DEFAULT_TAKE = int(os.environ.get('SEARCH_DEFAULT_TAKE', '20'))

LOGLEVEL = os.environ.get('LOGLEVEL', 'INFO')

CREATE_DB = bool(int(os.environ.get('CREATE_DB', '0')))
"""Create the tables of both stores when the service is built."""
