"""Tests for credential generation — identifiers, passwords, hashing."""

import re

import bcrypt

from pgtenant_engine.credentials.generator import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    hash_password,
    is_safe_identifier,
    is_safe_password,
    new_identifiers,
    new_password,
    verify_password,
)


class TestIdentifiers:
    def test_format(self):
        database_name, role_name = new_identifiers()
        assert re.fullmatch(r"tenant_[0-9a-f]{12}", database_name)
        assert re.fullmatch(r"user_[0-9a-f]{12}", role_name)

    def test_share_one_token(self):
        database_name, role_name = new_identifiers()
        assert database_name.removeprefix("tenant_") == role_name.removeprefix("user_")

    def test_fresh_each_call(self):
        names = {new_identifiers()[0] for _ in range(50)}
        assert len(names) == 50

    def test_generated_identifiers_are_safe(self):
        for name in new_identifiers():
            assert is_safe_identifier(name)

    def test_rejects_injection(self):
        assert not is_safe_identifier("tenant_x; DROP DATABASE postgres")
        assert not is_safe_identifier('tenant_"x"')
        assert not is_safe_identifier("Tenant_Upper")
        assert not is_safe_identifier("")


class TestPasswords:
    def test_length_and_alphabet(self):
        for _ in range(200):
            password = new_password()
            assert PASSWORD_MIN_LEN <= len(password) <= PASSWORD_MAX_LEN
            assert re.fullmatch(r"[A-Za-z0-9]+", password)

    def test_safe_for_ddl(self):
        assert is_safe_password(new_password())
        assert not is_safe_password("abc'def")
        assert not is_safe_password("abc\\def")

    def test_not_repeated(self):
        assert len({new_password() for _ in range(50)}) == 50


class TestPasswordHash:
    def test_hash_is_not_plaintext(self):
        password = new_password()
        stored = hash_password(password)
        assert password not in stored
        assert stored.startswith("$2b$10$")

    def test_verify(self):
        stored = hash_password("CorrectHorse42")
        assert verify_password("CorrectHorse42", stored)
        assert not verify_password("WrongHorse42", stored)

    def test_salted(self):
        assert hash_password("same") != hash_password("same")

    def test_stored_hash_is_bcrypt(self):
        stored = hash_password("CorrectHorse42")
        assert bcrypt.checkpw(b"CorrectHorse42", stored.encode())

    def test_malformed_hash(self):
        assert not verify_password("x", "not-a-hash")
        assert not verify_password("x", "")
