import os
import unittest
from unittest import mock

from tests import base  # noqa: F401

from rwanda_planner import constants, mailer
from rwanda_planner.app import create_app


class RecipientTests(unittest.TestCase):
    def test_test_mode_detection(self):
        self.assertTrue(mailer.is_test_mode("Rwanda <onboarding@resend.dev>"))
        self.assertFalse(mailer.is_test_mode("Rwanda <hello@aclicktorwanda.com>"))

    def test_live_mode_keeps_requested_recipient(self):
        self.assertEqual(
            mailer.resolve_recipient("guest@example.com", "hello@aclicktorwanda.com"),
            "guest@example.com",
        )

    def test_test_mode_redirects_to_verified_address(self):
        with mock.patch.object(constants, "VERIFIED_EMAIL", "owner@example.com"):
            self.assertEqual(
                mailer.resolve_recipient("guest@example.com", "onboarding@resend.dev"),
                "owner@example.com",
            )

    def test_test_mode_falls_back_to_admin_address(self):
        with mock.patch.object(constants, "VERIFIED_EMAIL", ""), \
                mock.patch.object(constants, "ADMIN_EMAILS", ["admin@example.com"]):
            self.assertEqual(
                mailer.resolve_recipient("guest@example.com", "onboarding@resend.dev"),
                "admin@example.com",
            )


class SendEmailTests(unittest.TestCase):
    def test_missing_api_key(self):
        with mock.patch.dict(os.environ, {"RESEND_API_KEY": ""}):
            with self.assertRaises(mailer.MailerError):
                mailer.send_email(["guest@example.com"], "Hi", "<p>Hi</p>")

    def test_posts_to_resend(self):
        response = mock.Mock(ok=True, status_code=200)
        response.json.return_value = {"id": "email-1"}
        with mock.patch.dict(os.environ, {"RESEND_API_KEY": "re_test"}), \
                mock.patch.object(mailer.requests, "post", return_value=response) as post:
            data = mailer.send_email(["guest@example.com"], "Hi", "<p>Hi</p>", from_email="a@b.com")

        self.assertEqual(data, {"id": "email-1"})
        kwargs = post.call_args.kwargs
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer re_test")
        self.assertEqual(kwargs["json"]["to"], ["guest@example.com"])
        self.assertEqual(kwargs["json"]["from"], "a@b.com")

    def test_provider_error_raises(self):
        response = mock.Mock(ok=False, status_code=422)
        response.json.return_value = {"message": "Invalid from address"}
        with mock.patch.dict(os.environ, {"RESEND_API_KEY": "re_test"}), \
                mock.patch.object(mailer.requests, "post", return_value=response):
            with self.assertRaises(mailer.MailerError) as ctx:
                mailer.send_email(["guest@example.com"], "Hi", "<p>Hi</p>")
        self.assertEqual(str(ctx.exception), "Invalid from address")


class RenderTests(unittest.TestCase):
    def setUp(self):
        super().setUp()
        ctx = create_app().app_context()
        ctx.push()
        self.addCleanup(ctx.pop)

    def test_package_email_escapes_content(self):
        with mock.patch.object(mailer, "send_email", return_value={"id": "e1"}) as send:
            mailer.send_package_email(
                "guest@example.com",
                "Jean",
                "Gorilla Week",
                "Day 1: Kigali\n<script>alert(1)</script>",
                "ai-planner",
                "July 1, 2026",
            )
        _to, subject, html = send.call_args[0]
        self.assertEqual(subject, "Your Rwanda Tour Package: Gorilla Week")
        self.assertIn("Day 1: Kigali<br>", html)
        self.assertIn("&lt;script&gt;", html)
        self.assertNotIn("<script>", html)


if __name__ == "__main__":
    unittest.main()
