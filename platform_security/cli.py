"""
Command-line administration of users.

The service is built from :mod:`platform_security.config` unless one is
passed in as the click context object (which is what the tests do).
``create-db`` always works on the configured databases.
"""

import json
import sys
from typing import Optional

import click

from . import accounts, config, credentials, domain
from .app_logging import setup_logger
from .factory import create_security_service, get_engine
from .service import SecurityService


def _service(ctx: click.Context) -> SecurityService:
    if ctx.obj is None:
        setup_logger(config.LOGLEVEL)
        ctx.obj = create_security_service()
    service: SecurityService = ctx.obj
    return service


def _echo_result(result: domain.SecurityResult) -> None:
    if result.succeeded:
        click.echo('OK')
        return
    for error in result.errors:
        click.echo(error, err=True)
    sys.exit(1)


@click.group()
def cli() -> None:
    """Manage platform users and their accounts."""


@cli.command('create-db')
def create_db() -> None:
    """Create the tables of both configured databases."""
    setup_logger(config.LOGLEVEL)
    credential_engine = get_engine(config.CREDENTIAL_DATABASE_URI)
    account_engine = get_engine(config.ACCOUNT_DATABASE_URI)
    credentials.create_all(credential_engine)
    accounts.create_all(account_engine)
    click.echo('Created credential and account tables')


@cli.command('create-user')
@click.option('--username', prompt='Username')
@click.option('--email', prompt='Email address')
@click.option('--password', prompt=True, hide_input=True,
              confirmation_prompt=True)
@click.option('--administrator', is_flag=True, default=False)
@click.option('--user-type', default=None)
@click.pass_context
def create_user(ctx: click.Context, username: str, email: str,
                password: str, administrator: bool,
                user_type: Optional[str]) -> None:
    """Create a user with both a credential and an account record."""
    user = domain.ExtendedUser(user_name=username, email=email,
                               password=password,
                               is_administrator=administrator,
                               user_type=user_type)
    _echo_result(_service(ctx).create(user))


@cli.command('show-user')
@click.argument('username')
@click.option('--details', default=domain.UserDetails.REDUCED.value,
              type=click.Choice([d.value for d in domain.UserDetails]))
@click.pass_context
def show_user(ctx: click.Context, username: str, details: str) -> None:
    """Print a user as JSON."""
    user = _service(ctx).find_by_name(username, domain.UserDetails(details))
    if user is None:
        click.echo(f'No such user: {username}', err=True)
        sys.exit(1)
    click.echo(json.dumps(domain.to_dict(user), indent=2))


@cli.command('delete-users')
@click.argument('usernames', nargs=-1, required=True)
@click.pass_context
def delete_users(ctx: click.Context, usernames: tuple) -> None:
    """Delete users. Protected and unknown users are skipped."""
    _service(ctx).delete(list(usernames))
    click.echo('OK')


@cli.command('reset-password')
@click.argument('username')
@click.option('--password', prompt=True, hide_input=True,
              confirmation_prompt=True)
@click.pass_context
def reset_password(ctx: click.Context, username: str, password: str) -> None:
    """Set a new password for a user."""
    _echo_result(_service(ctx).reset_password_by_name(username, password))


@cli.command('search')
@click.option('--keyword', default=None)
@click.option('--skip', default=0, type=click.IntRange(min=0))
@click.option('--take', default=config.SEARCH_DEFAULT_TAKE,
              type=click.IntRange(min=0))
@click.pass_context
def search(ctx: click.Context, keyword: Optional[str], skip: int,
           take: int) -> None:
    """List usernames matching a keyword."""
    response = _service(ctx).search(domain.UserSearchRequest(
        keyword=keyword, skip_count=skip, take_count=take
    ))
    for user in response.users:
        click.echo(user.user_name)
    click.echo(f'{len(response.users)} of {response.total_count} users')


@cli.command('generate-api-account')
@click.option('--type', 'api_account_type',
              default=domain.ApiAccountType.SIMPLE.value,
              type=click.Choice([t.value for t in domain.ApiAccountType]))
@click.pass_context
def generate_api_account(ctx: click.Context, api_account_type: str) -> None:
    """Generate a new API credential pair."""
    account = _service(ctx).generate_api_account(
        domain.ApiAccountType(api_account_type)
    )
    click.echo(json.dumps(domain.to_dict(account), indent=2))


if __name__ == '__main__':
    cli()
