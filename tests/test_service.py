"""End-to-end tests for the panel HTTP API."""

from __future__ import annotations

import logging
import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from panel.config import Settings
from panel.database import Database
from panel.models import Role
from panel.passwords import PasswordHasher
from panel.service import create_app

SECRET = "tests-signing-secret-0123456789abcdef"


class PanelServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        root = Path(self._tempdir.name)
        self.settings = Settings(
            token_secret=SECRET,
            database_path=root / "panel.sqlite3",
            upload_dir=root / "uploads",
            password_rounds=1000,
            default_page_size=10,
            max_page_size=20,
        )
        self.database = Database(
            self.settings.database_path,
            hasher=PasswordHasher(rounds=self.settings.password_rounds),
        )
        self.app = create_app(settings=self.settings, database=self.database)

    def tearDown(self) -> None:
        self._tempdir.cleanup()

    def _bearer(self, email: str, role: Role = Role.USER) -> dict[str, str]:
        account = self.database.create_account(None, email, "role-password")
        if role is not Role.USER:
            self.database.set_account_role(account.id, role)
        token = self.app.state.tokens.issue(account.id, role)
        return {"Authorization": f"Bearer {token}"}

    def test_register_login_and_create_record(self) -> None:
        with TestClient(self.app) as client:
            registered = client.post(
                "/api/auth/register",
                json={"email": "a@x.com", "password": "pw123456"},
            )
            self.assertEqual(registered.status_code, 200, registered.text)
            account = registered.json()
            self.assertEqual(account["email"], "a@x.com")
            self.assertEqual(account["role"], "user")
            self.assertNotIn("password", account)
            self.assertNotIn("password_hash", account)

            login = client.post("/api/auth/login", json={"email": "a@x.com", "password": "pw123456"})
            self.assertEqual(login.status_code, 200, login.text)
            token = login.json()["token"]
            self.assertEqual(login.json()["token_type"], "bearer")
            headers = {"Authorization": f"Bearer {token}"}

            empty = client.get("/api/tasks", headers=headers)
            self.assertEqual(empty.status_code, 200, empty.text)
            self.assertEqual(empty.json()["items"], [])

            first = client.post("/api/tasks", headers=headers, json={"title": "Buy milk"})
            self.assertEqual(first.status_code, 200, first.text)
            second = client.post("/api/tasks", headers=headers, json={"title": "Walk dog"})
            self.assertEqual(second.status_code, 200, second.text)
            self.assertEqual(second.json()["created_by"], account["id"])
            self.assertFalse(second.json()["completed"])

            listing = client.get("/api/tasks", headers=headers)
            self.assertEqual(listing.status_code, 200, listing.text)
            payload = listing.json()
            self.assertEqual(payload["total"], 2)
            self.assertEqual(
                [item["id"] for item in payload["items"]],
                [second.json()["id"], first.json()["id"]],
            )

            me = client.get("/api/auth/me", headers=headers)
            self.assertEqual(me.status_code, 200, me.text)
            self.assertEqual(me.json()["id"], account["id"])

    def test_duplicate_registration_is_rejected(self) -> None:
        with TestClient(self.app) as client:
            body = {"name": "Alice", "email": "alice@example.com", "password": "pw123456"}
            self.assertEqual(client.post("/api/auth/register", json=body).status_code, 200)

            again = client.post(
                "/api/auth/register",
                json={**body, "email": "ALICE@example.com"},
            )
            self.assertEqual(again.status_code, 400, again.text)
            self.assertIn("already exists", again.json()["detail"])
            self.assertEqual(self.database.count_accounts(), 1)

    def test_registration_validates_input(self) -> None:
        with TestClient(self.app) as client:
            short = client.post("/api/auth/register", json={"email": "b@x.com", "password": "short"})
            self.assertEqual(short.status_code, 400, short.text)
            self.assertTrue(short.json()["detail"].startswith("password"))

            missing = client.post("/api/auth/register", json={"password": "pw123456"})
            self.assertEqual(missing.status_code, 400, missing.text)

            bad_email = client.post("/api/auth/register", json={"email": "nope", "password": "pw123456"})
            self.assertEqual(bad_email.status_code, 400, bad_email.text)
            self.assertEqual(self.database.count_accounts(), 0)

    def test_login_rejects_bad_credentials_without_logging_password(self) -> None:
        self.database.create_account(None, "carol@example.com", "correct-password")

        with TestClient(self.app) as client, self.assertLogs("panel.service", level=logging.WARNING) as logs:
            wrong = client.post(
                "/api/auth/login",
                json={"email": "carol@example.com", "password": "wrong-password"},
            )
            unknown = client.post(
                "/api/auth/login",
                json={"email": "nobody@example.com", "password": "wrong-password"},
            )

        self.assertEqual(wrong.status_code, 401, wrong.text)
        self.assertEqual(unknown.status_code, 401, unknown.text)
        self.assertEqual(wrong.json(), unknown.json())
        self.assertNotIn("wrong-password", "\n".join(logs.output))

    def test_update_and_delete_missing_records_return_not_found(self) -> None:
        headers = self._bearer("emp@example.com", Role.EMPLOYEE)

        with TestClient(self.app) as client:
            created = client.post("/api/notes", headers=headers, json={"title": "Keep"})
            self.assertEqual(created.status_code, 200, created.text)

            update = client.put("/api/notes/missing", headers=headers, json={"title": "New"})
            self.assertEqual(update.status_code, 404, update.text)
            self.assertEqual(update.json(), {"detail": "Note not found"})

            delete = client.delete("/api/tasks/missing", headers=headers)
            self.assertEqual(delete.status_code, 404, delete.text)

            fetch = client.get("/api/notes/missing", headers=headers)
            self.assertEqual(fetch.status_code, 404, fetch.text)

            listing = client.get("/api/notes", headers=headers).json()
            self.assertEqual(listing["total"], 1)
            self.assertEqual(listing["items"][0]["title"], "Keep")

    def test_update_merges_only_provided_fields(self) -> None:
        headers = self._bearer("dan@example.com")

        with TestClient(self.app) as client:
            created = client.post(
                "/api/tasks",
                headers=headers,
                json={"title": "Write report", "description": "Quarterly"},
            ).json()

            toggled = client.put(f"/api/tasks/{created['id']}", headers=headers, json={"completed": True})
            self.assertEqual(toggled.status_code, 200, toggled.text)
            self.assertTrue(toggled.json()["completed"])
            self.assertEqual(toggled.json()["title"], "Write report")
            self.assertEqual(toggled.json()["description"], "Quarterly")

            cleared = client.put(
                f"/api/tasks/{created['id']}",
                headers=headers,
                json={"description": None, "title": None},
            )
            self.assertEqual(cleared.status_code, 200, cleared.text)
            self.assertIsNone(cleared.json()["description"])
            self.assertEqual(cleared.json()["title"], "Write report")

            blank = client.put(f"/api/tasks/{created['id']}", headers=headers, json={"title": "   "})
            self.assertEqual(blank.status_code, 400, blank.text)

    def test_create_requires_title(self) -> None:
        headers = self._bearer("erin@example.com")

        with TestClient(self.app) as client:
            response = client.post("/api/tasks", headers=headers, json={})
            self.assertEqual(response.status_code, 400, response.text)
            self.assertEqual(response.json()["detail"], "title: Field required")

    def test_task_deletion_requires_employee_role(self) -> None:
        user_headers = self._bearer("user@example.com")
        employee_headers = self._bearer("staff@example.com", Role.EMPLOYEE)

        with TestClient(self.app) as client:
            task_id = client.post("/api/tasks", headers=user_headers, json={"title": "Tidy"}).json()["id"]

            forbidden = client.delete(f"/api/tasks/{task_id}", headers=user_headers)
            self.assertEqual(forbidden.status_code, 403, forbidden.text)
            self.assertEqual(self.database.count_records("tasks"), 1)

            allowed = client.delete(f"/api/tasks/{task_id}", headers=employee_headers)
            self.assertEqual(allowed.status_code, 200, allowed.text)
            self.assertEqual(allowed.json(), {"status": "deleted", "id": task_id})

            again = client.delete(f"/api/tasks/{task_id}", headers=employee_headers)
            self.assertEqual(again.status_code, 404, again.text)

    def test_listing_is_paginated(self) -> None:
        headers = self._bearer("frank@example.com")

        with TestClient(self.app) as client:
            for index in range(3):
                client.post("/api/notes", headers=headers, json={"title": f"note {index}"})

            first_page = client.get("/api/notes", headers=headers, params={"limit": 2}).json()
            self.assertEqual([item["title"] for item in first_page["items"]], ["note 2", "note 1"])
            self.assertEqual(first_page["total"], 3)
            self.assertEqual(first_page["limit"], 2)

            second_page = client.get("/api/notes", headers=headers, params={"limit": 2, "offset": 2}).json()
            self.assertEqual([item["title"] for item in second_page["items"]], ["note 0"])

            default_page = client.get("/api/notes", headers=headers).json()
            self.assertEqual(default_page["limit"], 10)

            self.assertEqual(client.get("/api/notes", headers=headers, params={"limit": 0}).status_code, 400)
            self.assertEqual(client.get("/api/notes", headers=headers, params={"limit": 21}).status_code, 400)
            self.assertEqual(client.get("/api/notes", headers=headers, params={"offset": -1}).status_code, 400)

    def test_healthcheck_is_public(self) -> None:
        with TestClient(self.app) as client:
            response = client.get("/healthz")
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json(), {"status": "ok"})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
