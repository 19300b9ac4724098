import os
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from tests.base import ApiTestCase
from tours_api.core.config import settings
from tours_api.core.error_handlers import GENERIC_MESSAGE, duplicate_key_from_integrity_error
from tours_api.core.errors import AppError, DuplicateKey, NotFound, ValidationError
from tours_api.main import app


class _FakePgError(Exception):
    def __init__(self, constraint_name: str, sqlstate: str = "23505"):
        super().__init__(f'duplicate key value violates unique constraint "{constraint_name}"')
        self.sqlstate = sqlstate
        self.diag = SimpleNamespace(constraint_name=constraint_name)


class ErrorTaxonomyTests(unittest.TestCase):
    def test_status_follows_http_class(self):
        self.assertEqual(NotFound().status, "fail")
        self.assertEqual(ValidationError().status, "fail")
        self.assertEqual(AppError("x").status, "error")
        self.assertEqual(AppError("x", status_code=502).status_code, 502)

    def test_duplicate_key_message(self):
        self.assertEqual(
            DuplicateKey("name", "The Forest Hiker").message,
            'Duplicate field value: "The Forest Hiker" for name. Please use another value!',
        )


class DuplicateKeyDetectionTests(unittest.TestCase):
    def test_postgres_constraint_name_is_used(self):
        exc = IntegrityError("INSERT ...", {}, _FakePgError("uq_tours_name"))
        err = duplicate_key_from_integrity_error(exc)
        self.assertIsInstance(err, DuplicateKey)
        self.assertEqual(err.field, "name")

    def test_other_postgres_violations_are_not_duplicates(self):
        exc = IntegrityError("INSERT ...", {}, _FakePgError("fk_tour_start_dates_tour_id_tours", sqlstate="23503"))
        self.assertIsNone(duplicate_key_from_integrity_error(exc))

    def test_sqlite_message_fallback(self):
        exc = IntegrityError("INSERT ...", {}, Exception("UNIQUE constraint failed: users.email"))
        self.assertEqual(duplicate_key_from_integrity_error(exc).field, "email")


class ErrorResponseTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.unsafe_client = TestClient(app, raise_server_exceptions=False)
        self.addCleanup(self.unsafe_client.close)

    def test_unknown_route(self):
        response = self.client.get("/api/v1/nothing-here")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["status"], "fail")
        self.assertEqual(response.json()["message"], "Can't find /api/v1/nothing-here on this server!")

    def test_unexpected_error_in_development_exposes_details(self):
        with patch.object(settings, "APP_ENV", "development"), patch(
            "tours_api.api.tours.tour_stats", side_effect=RuntimeError("boom")
        ):
            response = self.unsafe_client.get("/api/v1/tours/tour-stats")
        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertEqual(body["status"], "error")
        self.assertEqual(body["message"], "boom")
        self.assertEqual(body["error"], "RuntimeError")
        self.assertIn("RuntimeError: boom", body["stack"])

    def test_unexpected_error_in_production_is_masked(self):
        with patch.object(settings, "APP_ENV", "production"), patch(
            "tours_api.api.tours.tour_stats", side_effect=RuntimeError("db password is hunter2")
        ):
            response = self.unsafe_client.get("/api/v1/tours/tour-stats")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"status": "error", "message": GENERIC_MESSAGE})

    def test_operational_error_in_production_keeps_message(self):
        with patch.object(settings, "APP_ENV", "production"):
            response = self.client.get("/api/v1/tours/not-an-id")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"status": "fail", "message": "Invalid id: not-an-id."})

    def test_malformed_json_body_is_400(self):
        admin = self.create_user(email="admin@example.com", role="admin")
        response = self.client.post(
            "/api/v1/tours",
            content=b"{not json",
            headers={**self.auth_headers(admin), "Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertTrue(response.json()["message"].startswith("Invalid input data."))


if __name__ == "__main__":
    unittest.main()
