"""
tests/test_cli.py -- Tests for the admin CLI in main.py.

The CLI opens its store through main._open_user_store(); tests point that at
an in-memory engine so the configured database is never touched.
"""

from __future__ import annotations

from contextlib import contextmanager

import pytest

import main
from auth.store import UserStore, authenticate


@pytest.fixture
def cli_store(engine, monkeypatch) -> UserStore:
    store = UserStore(engine)

    @contextmanager
    def _open():
        yield store

    monkeypatch.setattr(main, "_open_user_store", _open)
    return store


def test_create_admin(cli_store) -> None:
    uid = main.create_admin("root@example.com", "Root Admin", password="R00t!pass")
    user = authenticate(cli_store, "root@example.com", "R00t!pass")
    assert user is not None
    assert user.id == uid
    assert user.is_admin


def test_create_admin_weak_password_exits_nonzero(cli_store, monkeypatch, capsys) -> None:
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": "weak")
    code = main.main(["create-admin", "--email", "root@example.com", "--name", "Root Admin"])
    assert code == 1
    assert "Password must be" in capsys.readouterr().out
    assert not cli_store.has_users()


@pytest.mark.parametrize("email", ["not-an-email", "root@localhost", "two words@example.com", ""])
def test_create_admin_invalid_email_exits_nonzero(cli_store, capsys, email) -> None:
    code = main.main(["create-admin", "--email", email, "--name", "Root Admin", "--password", "R00t!pass"])
    assert code == 1
    assert "Invalid email address." in capsys.readouterr().out
    assert not cli_store.has_users()


def test_promote_and_demote(cli_store, plain_user) -> None:
    assert main.main(["promote", "--email", plain_user.email]) == 0
    assert cli_store.get_by_id(plain_user.id).is_admin
    assert main.main(["demote", "--email", plain_user.email]) == 0
    assert not cli_store.get_by_id(plain_user.id).is_admin


def test_promote_unknown_email(cli_store) -> None:
    assert main.main(["promote", "--email", "nobody@example.com"]) == 1


def test_cli_disposes_engine_after_each_command(engine, monkeypatch) -> None:
    disposed = []
    monkeypatch.setattr(engine, "dispose", lambda: disposed.append(True))
    monkeypatch.setattr(main, "create_db_engine", lambda url: engine)

    assert main.set_role("nobody@example.com", True) is False
    assert disposed == [True]

    main.create_admin("root@example.com", "Root Admin", password="R00t!pass")
    assert disposed == [True, True]
