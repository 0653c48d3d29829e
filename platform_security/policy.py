"""Decide which accounts may be modified."""

from typing import Iterable, Optional


class AccessPolicy:
    """
    Guards protected accounts against updates and deletion.

    Parameters
    ----------
    non_editable_users : iterable or None
        Usernames that must not be changed. ``None`` or empty means that
        every account is editable.

    """

    def __init__(self, non_editable_users: Optional[Iterable[str]] = None):
        self.non_editable_users = frozenset(non_editable_users or ())

    def is_editable(self, user_name: Optional[str]) -> bool:
        """Whether ``user_name`` may be updated or deleted."""
        return user_name not in self.non_editable_users
