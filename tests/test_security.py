import os
import unittest

from flask import Flask, request

from rwanda_planner import security


class SecurityTests(unittest.TestCase):
    def setUp(self):
        self.app = Flask(__name__)
        self._env_backup = os.environ.copy()

    def tearDown(self):
        os.environ.clear()
        os.environ.update(self._env_backup)

    def test_allowed_origins_includes_defaults(self):
        os.environ["ALLOWED_ORIGINS"] = "https://example.com"
        allowed = security.get_allowed_origins()
        self.assertIn("https://example.com", allowed)
        self.assertIn("https://aclicktorwanda.com", allowed)
        self.assertIn("http://localhost:8080", allowed)

    def test_csrf_valid_allows_get(self):
        with self.app.test_request_context("/api/itinerary", method="GET"):
            self.assertTrue(security.is_csrf_valid(request))

    def test_csrf_valid_with_origin(self):
        headers = {"Origin": "http://localhost:8080"}
        with self.app.test_request_context("/api/itinerary", method="POST", headers=headers):
            self.assertTrue(security.is_csrf_valid(request))

    def test_csrf_invalid_with_foreign_origin(self):
        headers = {"Origin": "https://evil.example"}
        with self.app.test_request_context("/api/itinerary", method="DELETE", headers=headers):
            self.assertFalse(security.is_csrf_valid(request))

    def test_csrf_uses_referer_when_origin_missing(self):
        headers = {"Referer": "https://aclicktorwanda.com/itinerary"}
        with self.app.test_request_context("/api/itinerary", method="PATCH", headers=headers):
            self.assertTrue(security.is_csrf_valid(request))

    def test_csrf_invalid_missing_origin(self):
        os.environ["ALLOW_MISSING_ORIGIN"] = "false"
        with self.app.test_request_context("/api/itinerary", method="POST"):
            self.assertFalse(security.is_csrf_valid(request))

    def test_csrf_allows_missing_origin_when_enabled(self):
        os.environ["ALLOW_MISSING_ORIGIN"] = "true"
        with self.app.test_request_context("/api/itinerary", method="POST"):
            self.assertTrue(security.is_csrf_valid(request))

    def test_security_headers_applied(self):
        response = self.app.response_class("ok")
        response = security.apply_security_headers(response)
        self.assertEqual(response.headers.get("X-Content-Type-Options"), "nosniff")
        self.assertEqual(response.headers.get("X-Frame-Options"), "DENY")
        self.assertIn("Content-Security-Policy", response.headers)
        self.assertEqual(response.headers.get("Cache-Control"), "no-store")

    def test_event_stream_headers(self):
        response = self.app.response_class("data: [DONE]\n\n", mimetype="text/event-stream")
        response = security.apply_security_headers(response)
        self.assertEqual(response.headers.get("Cache-Control"), "no-cache")
        self.assertEqual(response.headers.get("X-Accel-Buffering"), "no")

    def test_request_origin_from_referer(self):
        headers = {"Referer": "http://localhost:8080/planner?step=2"}
        with self.app.test_request_context("/functions/ai-planner", method="POST", headers=headers):
            self.assertEqual(security.request_origin(request), "http://localhost:8080")

    def test_cors_covers_api_and_functions(self):
        resources = security.cors_resources()
        self.assertEqual(set(resources), {r"/api/*", r"/functions/*"})
        self.assertIn("https://aclicktorwanda.com", resources[r"/api/*"]["origins"])


if __name__ == "__main__":
    unittest.main()
