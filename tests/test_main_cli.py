from __future__ import annotations

from pathlib import Path

import pytest

from main import _parse_args, main
from panel.database import Database
from panel.models import Role
from panel.passwords import PasswordHasher

SECRET = "tests-signing-secret-0123456789abcdef"


def test_bare_invocation_serves_with_defaults() -> None:
    args = _parse_args([])
    assert args.command == "serve"
    assert args.config is None
    assert args.host is None


def test_serve_options_without_subcommand() -> None:
    args = _parse_args(["--config=panel.yaml", "--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.config == "panel.yaml"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


@pytest.mark.parametrize(
    "argv",
    [
        ["--config", "panel.yaml", "init-db"],
        ["init-db", "--config", "panel.yaml"],
        ["init-db", "--config=panel.yaml"],
    ],
)
def test_config_option_accepted_around_subcommand(argv: list[str]) -> None:
    args = _parse_args(argv)
    assert args.command == "init-db"
    assert args.config == "panel.yaml"


def test_serve_subcommand_accepts_config() -> None:
    args = _parse_args(["serve", "--config", "panel.yaml", "--port", "9000"])
    assert args.command == "serve"
    assert args.config == "panel.yaml"
    assert args.port == 9000


def test_config_after_subcommand_overrides_leading_config() -> None:
    args = _parse_args(["--config", "first.yaml", "set-role", "a@x.com", "user", "--config", "second.yaml"])
    assert args.config == "second.yaml"


def test_set_role_subcommand_validates_role() -> None:
    args = _parse_args(["set-role", "a@x.com", "admin"])
    assert args.command == "set-role"
    assert args.role == "admin"

    with pytest.raises(SystemExit):
        _parse_args(["set-role", "a@x.com", "root"])


def test_set_role_updates_account(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    db_path = tmp_path / "panel.sqlite3"
    monkeypatch.setenv("PANEL_TOKEN_SECRET", SECRET)
    monkeypatch.setenv("PANEL_DB_PATH", str(db_path))
    monkeypatch.setenv("PANEL_PASSWORD_ROUNDS", "1000")
    monkeypatch.delenv("PANEL_CONFIG", raising=False)

    database = Database(db_path, hasher=PasswordHasher(rounds=1000))
    database.initialize()
    account = database.create_account("Operator", "ops@example.com", "operator-password")

    assert main(["set-role", "ops@example.com", "employee"]) == 0
    assert database.get_account(account.id).role is Role.EMPLOYEE

    assert main(["set-role", "nobody@example.com", "admin"]) == 1


def test_set_role_reads_config_given_after_subcommand(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    for variable in ("PANEL_CONFIG", "PANEL_TOKEN_SECRET", "PANEL_DB_PATH"):
        monkeypatch.delenv(variable, raising=False)
    config_path = tmp_path / "panel.yaml"
    config_path.write_text(
        "\n".join(
            [
                f"token_secret: {SECRET}",
                "database_path: panel.sqlite3",
                "password_rounds: 1000",
            ]
        ),
        encoding="utf-8",
    )

    database = Database(tmp_path / "panel.sqlite3", hasher=PasswordHasher(rounds=1000))
    database.initialize()
    account = database.create_account("Operator", "ops@example.com", "operator-password")

    assert main(["set-role", "ops@example.com", "admin", "--config", str(config_path)]) == 0
    assert database.get_account(account.id).role is Role.ADMIN
