"""
tests/test_user_store.py -- Unit tests for auth/store.UserStore.
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserStore


def _user(email: str, role: Role = Role.USER) -> User:
    return User(email=email, hashed_password="$2b$04$notarealhash", role=role)


class TestUserStore:
    def test_empty_store_has_no_users(self, users: UserStore) -> None:
        assert users.has_users() is False
        assert users.list_users() == []

    def test_create_and_fetch(self, users: UserStore) -> None:
        uid = users.create_user(_user("ada@example.com", Role.ADMIN))
        assert users.has_users() is True

        by_id = users.get_by_id(uid)
        by_email = users.get_by_email("ada@example.com")
        assert by_id == by_email
        assert by_id.role is Role.ADMIN
        assert by_id.created_at

    def test_unknown_lookups_return_none(self, users: UserStore) -> None:
        assert users.get_by_id(12345) is None
        assert users.get_by_email("nobody@example.com") is None

    def test_duplicate_email_raises_integrity_error(self, users: UserStore) -> None:
        users.create_user(_user("ada@example.com"))
        with pytest.raises(IntegrityError):
            users.create_user(_user("ada@example.com"))

    def test_update_last_login(self, users: UserStore) -> None:
        uid = users.create_user(_user("ada@example.com"))
        assert users.get_by_id(uid).last_login is None
        users.update_last_login(uid)
        assert users.get_by_id(uid).last_login is not None

    def test_list_users(self, users: UserStore) -> None:
        for email in ("a@example.com", "b@example.com"):
            users.create_user(_user(email))
        assert sorted(u.email for u in users.list_users()) == ["a@example.com", "b@example.com"]
