"""Unit tests for auth/credentials.py -- password verification and role-scoped login.

Covers:
- verify_password() matches, mismatches, and raises CryptoFailure on a malformed hash
- authenticate() succeeds only when the username exists, the password verifies
  and the stored role matches
- authenticate() runs bcrypt even for unknown usernames (timing equalization)
"""

from unittest.mock import patch

import pytest

from auth import credentials
from auth.credentials import CryptoFailure, authenticate, hash_password, verify_password
from auth.models import Role


class TestVerifyPassword:
    def test_matching_password(self) -> None:
        stored = hash_password("correct horse")
        assert verify_password("correct horse", stored) is True

    def test_mismatch_returns_false(self) -> None:
        stored = hash_password("correct horse")
        assert verify_password("battery staple", stored) is False

    def test_hash_is_salted(self) -> None:
        assert hash_password("same") != hash_password("same")

    def test_overlong_password_is_not_an_error(self) -> None:
        stored = hash_password("x" * 100)
        assert verify_password("x" * 100, stored) is True
        assert verify_password("y" * 100, stored) is False

    def test_malformed_hash_raises(self) -> None:
        with pytest.raises(CryptoFailure):
            verify_password("anything", "not-a-bcrypt-hash")


class TestAuthenticate:
    @pytest.mark.parametrize(
        ("username", "role"),
        [("root", Role.admin), ("alice", Role.teacher), ("sam", Role.student)],
    )
    def test_valid_credentials_and_role(self, stores, accounts, username, role) -> None:
        account = accounts[username]
        user = authenticate(stores.users, username, account.password, role)
        assert user is not None
        assert user.id == account.id

    def test_wrong_password(self, stores, accounts) -> None:
        assert authenticate(stores.users, "sam", "wrong-password", Role.student) is None

    def test_unknown_username(self, stores, accounts) -> None:
        assert authenticate(stores.users, "nobody", "whatever", Role.student) is None

    def test_correct_password_wrong_role(self, stores, accounts) -> None:
        """A teacher account signing in through the student door is rejected even though the password verifies."""
        account = accounts["alice"]
        assert verify_password(account.password, account.user.password_hash)
        assert authenticate(stores.users, "alice", account.password, Role.student) is None

    def test_admin_cannot_sign_in_as_teacher(self, stores, accounts) -> None:
        assert authenticate(stores.users, "root", accounts["root"].password, Role.teacher) is None

    def test_unknown_username_still_runs_bcrypt(self, stores, accounts) -> None:
        with patch.object(credentials, "verify_password", wraps=credentials.verify_password) as spy:
            authenticate(stores.users, "nobody", "whatever", Role.admin)
        spy.assert_called_once_with("whatever", credentials._DUMMY_HASH)

    def test_username_is_case_sensitive(self, stores, accounts) -> None:
        assert authenticate(stores.users, "ALICE", accounts["alice"].password, Role.teacher) is None
