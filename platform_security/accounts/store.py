"""Account store backed by a SQLAlchemy session."""

import logging
import uuid
from typing import Any, Callable, Iterable, List, Optional

from sqlalchemy.orm import selectinload
from sqlalchemy.orm.session import Session

from ..domain import UserDetails
from ..exceptions import UnknownRole
from .models import DBAccount, DBRole, DBRoleAssignment, DBRolePermission

logger = logging.getLogger(__name__)


class AccountStore:
    """
    Handle on the account store for the duration of one operation.

    Changes made through :meth:`add` and :meth:`remove`, and changes to any
    loaded :class:`.DBAccount`, are pending until :meth:`commit`. Releasing
    the handle discards whatever was not committed.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def __enter__(self) -> 'AccountStore':
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        try:
            self.session.rollback()
        finally:
            self.session.close()

    def get_account_by_name(self, user_name: str,
                            details: UserDetails) -> Optional[DBAccount]:
        """
        Load the account of ``user_name``.

        At :attr:`UserDetails.REDUCED` only the account row is loaded.
        Otherwise role assignments (with their permissions) and API
        accounts are loaded with it.
        """
        query = self.session.query(DBAccount) \
            .filter(DBAccount.user_name == user_name)
        if details is not UserDetails.REDUCED:
            query = query.options(
                selectinload(DBAccount.role_assignments)
                .selectinload(DBRoleAssignment.role)
                .selectinload(DBRole.permissions),
                selectinload(DBAccount.api_accounts)
            )
        return query.first()

    def get_roles(self, ids: Iterable[str] = (),
                  names: Iterable[str] = ()) -> List[DBRole]:
        """
        Load roles by id and by name.

        Raises
        ------
        :class:`.UnknownRole`
            If any of the requested roles does not exist.

        """
        ids, names = set(ids), set(names)
        roles: List[DBRole] = []
        if ids:
            roles += self.session.query(DBRole).filter(DBRole.id.in_(ids)).all()
        if names:
            roles += self.session.query(DBRole) \
                .filter(DBRole.name.in_(names)).all()
        missing = (ids - {r.id for r in roles}) | (names - {r.name for r in roles})
        if missing:
            raise UnknownRole(f'Role {", ".join(sorted(missing))} not found.')
        return list({role.id: role for role in roles}.values())

    def add_role(self, name: str, permissions: Iterable[str] = (),
                 description: Optional[str] = None) -> DBRole:
        """Add a role; pending until :meth:`commit`."""
        db_role = DBRole(id=str(uuid.uuid4()), name=name,
                         description=description)
        db_role.permissions = [DBRolePermission(permission_id=permission)
                               for permission in permissions]
        self.session.add(db_role)
        return db_role

    def add(self, db_account: DBAccount) -> None:
        if not db_account.id:
            db_account.id = str(uuid.uuid4())
        self.session.add(db_account)

    def remove(self, db_account: DBAccount) -> None:
        self.session.delete(db_account)

    def commit(self) -> None:
        """Persist all pending changes since the handle was acquired."""
        try:
            self.session.commit()
        except Exception as e:
            logger.error('Commit failed, rolling back: %s', str(e))
            self.session.rollback()
            raise


def store_factory(sessions: Callable[[], Session]) \
        -> Callable[[], AccountStore]:
    """Bind a session factory into a factory for store handles."""
    def _open() -> AccountStore:
        return AccountStore(sessions())
    return _open
