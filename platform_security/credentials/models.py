"""Credential store database models."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, \
    String, UniqueConstraint, text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class DBUser(Base):  # type: ignore
    """
    Authentication-relevant data for one user.

    +------------------------+--------------+------+-----+---------+
    | Field                  | Type         | Null | Key | Default |
    +------------------------+--------------+------+-----+---------+
    | id                     | varchar(128) | NO   | PRI |         |
    | user_name              | varchar(256) | NO   | UNI |         |
    | email                  | varchar(256) | YES  | MUL | NULL    |
    | email_confirmed        | tinyint(1)   | NO   |     | 0       |
    | password_hash          | varchar(256) | YES  |     | NULL    |
    | security_stamp         | varchar(128) | YES  |     | NULL    |
    | phone_number           | varchar(64)  | YES  |     | NULL    |
    | phone_number_confirmed | tinyint(1)   | NO   |     | 0       |
    | two_factor_enabled     | tinyint(1)   | NO   |     | 0       |
    | lockout_end_date       | datetime     | YES  |     | NULL    |
    | lockout_enabled        | tinyint(1)   | NO   |     | 0       |
    | access_failed_count    | int(11)      | NO   |     | 0       |
    +------------------------+--------------+------+-----+---------+
    """

    __tablename__ = 'security_users'

    id = Column(String(128), primary_key=True)
    user_name = Column(String(256), nullable=False, unique=True, index=True)
    email = Column(String(256), nullable=True, index=True)
    email_confirmed = Column(Boolean, nullable=False,
                             server_default=text("0"), default=False)
    password_hash = Column(String(256), nullable=True)
    security_stamp = Column(String(128), nullable=True)
    phone_number = Column(String(64), nullable=True)
    phone_number_confirmed = Column(Boolean, nullable=False,
                                    server_default=text("0"), default=False)
    two_factor_enabled = Column(Boolean, nullable=False,
                                server_default=text("0"), default=False)
    lockout_end_date = Column(DateTime(timezone=True), nullable=True)
    lockout_enabled = Column(Boolean, nullable=False,
                             server_default=text("0"), default=False)
    access_failed_count = Column(Integer, nullable=False,
                                 server_default=text("0"), default=0)

    logins = relationship('DBUserLogin', back_populates='user',
                          cascade='all, delete-orphan')
    reset_tokens = relationship('DBPasswordResetToken', back_populates='user',
                                cascade='all, delete-orphan')


class DBUserLogin(Base):  # type: ignore
    """External login providers bound to a user."""

    __tablename__ = 'security_user_logins'
    __table_args__ = (
        UniqueConstraint('login_provider', 'provider_key'),
    )

    login_id = Column(Integer, primary_key=True, autoincrement=True)
    login_provider = Column(String(128), nullable=False)
    provider_key = Column(String(128), nullable=False)
    user_id = Column(ForeignKey('security_users.id'), nullable=False,
                     index=True)

    user = relationship('DBUser', back_populates='logins')


class DBPasswordResetToken(Base):  # type: ignore
    """
    Single-use password reset token.

    Only a digest of the token is kept; the token itself is returned once to
    the caller that requested it.
    """

    __tablename__ = 'security_password_reset_tokens'

    token_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(ForeignKey('security_users.id'), nullable=False,
                     index=True)
    token_digest = Column(String(64), nullable=False, unique=True)
    issued_when = Column(DateTime(timezone=True), nullable=False)
    expires_when = Column(DateTime(timezone=True), nullable=False)
    consumed = Column(Boolean, nullable=False, server_default=text("0"),
                      default=False)

    user = relationship('DBUser', back_populates='reset_tokens')
