"""Account store database models."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, \
    String, Text, UniqueConstraint, text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class DBAccount(Base):  # type: ignore
    """
    Business account of a user, keyed by username.

    +------------------+--------------+------+-----+----------+
    | Field            | Type         | Null | Key | Default  |
    +------------------+--------------+------+-----+----------+
    | id               | varchar(128) | NO   | PRI |          |
    | user_name        | varchar(256) | NO   | UNI |          |
    | store_id         | varchar(128) | YES  |     | NULL     |
    | member_id        | varchar(128) | YES  | MUL | NULL     |
    | is_administrator | tinyint(1)   | NO   |     | 0        |
    | user_type        | varchar(64)  | YES  |     | NULL     |
    | account_state    | varchar(32)  | NO   |     | Approved |
    | created_date     | datetime     | NO   |     |          |
    | modified_date    | datetime     | YES  |     | NULL     |
    +------------------+--------------+------+-----+----------+
    """

    __tablename__ = 'platform_accounts'

    id = Column(String(128), primary_key=True)
    user_name = Column(String(256), nullable=False, unique=True, index=True)
    store_id = Column(String(128), nullable=True)
    member_id = Column(String(128), nullable=True, index=True)
    is_administrator = Column(Boolean, nullable=False,
                              server_default=text("0"), default=False)
    user_type = Column(String(64), nullable=True)
    account_state = Column(String(32), nullable=False,
                           server_default=text("'Approved'"))
    created_date = Column(DateTime(timezone=True), nullable=False)
    modified_date = Column(DateTime(timezone=True), nullable=True)

    role_assignments = relationship('DBRoleAssignment',
                                    back_populates='account',
                                    cascade='all, delete-orphan')
    api_accounts = relationship('DBApiAccount', back_populates='account',
                                cascade='all, delete-orphan')


class DBRole(Base):  # type: ignore
    """Named set of permissions."""

    __tablename__ = 'platform_roles'

    id = Column(String(128), primary_key=True)
    name = Column(String(256), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    permissions = relationship('DBRolePermission', back_populates='role',
                               cascade='all, delete-orphan')


class DBRolePermission(Base):  # type: ignore
    __tablename__ = 'platform_role_permissions'
    __table_args__ = (
        UniqueConstraint('role_id', 'permission_id'),
    )

    role_permission_id = Column(Integer, primary_key=True,
                                autoincrement=True)
    role_id = Column(ForeignKey('platform_roles.id'), nullable=False,
                     index=True)
    permission_id = Column(String(256), nullable=False)

    role = relationship('DBRole', back_populates='permissions')


class DBRoleAssignment(Base):  # type: ignore
    """Links an account to a role."""

    __tablename__ = 'platform_role_assignments'
    __table_args__ = (
        UniqueConstraint('account_id', 'role_id'),
    )

    assignment_id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(ForeignKey('platform_accounts.id'), nullable=False,
                        index=True)
    role_id = Column(ForeignKey('platform_roles.id'), nullable=False,
                     index=True)

    account = relationship('DBAccount', back_populates='role_assignments')
    role = relationship('DBRole')


class DBApiAccount(Base):  # type: ignore
    """API credentials issued for an account."""

    __tablename__ = 'platform_api_accounts'

    id = Column(String(128), primary_key=True)
    account_id = Column(ForeignKey('platform_accounts.id'), nullable=False,
                        index=True)
    name = Column(String(128), nullable=True)
    app_id = Column(String(128), nullable=False, unique=True)
    secret_key = Column(String(1024), nullable=False)
    api_account_type = Column(String(32), nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=text("1"),
                       default=True)

    account = relationship('DBAccount', back_populates='api_accounts')
