import sqlite3
import tempfile
import threading
import time
import unittest

from config import Settings
from db import init_db
from security import StaticAuthority, UserStoreAuthority, authenticate
from validation import ValidationError

DELAY = 0.1


class StaticGateTests(unittest.TestCase):
    def setUp(self):
        self.settings = Settings(reference_username="alice", reference_password="s3cret-pass")
        self.authority = StaticAuthority("alice", "s3cret-pass")

    def _timed(self, username, password):
        start = time.monotonic()
        result = authenticate(username, password, self.authority, self.settings)
        return result, time.monotonic() - start

    def test_valid_credentials(self):
        principal, _ = self._timed("alice", "s3cret-pass")
        self.assertEqual(principal.username, "alice")
        self.assertIsNone(principal.id)

    def test_credentials_are_sanitized_before_comparison(self):
        principal, _ = self._timed("  alice\x00 ", " s3cret-pass ")
        self.assertIsNotNone(principal)

    def test_comparison_is_case_sensitive(self):
        principal, _ = self._timed("Alice", "s3cret-pass")
        self.assertIsNone(principal)

    def test_wrong_password_and_unknown_user_are_delayed(self):
        for username, password in [("alice", "wrong"), ("nobody", "s3cret-pass")]:
            with self.subTest(username=username):
                principal, elapsed = self._timed(username, password)
                self.assertIsNone(principal)
                self.assertGreaterEqual(elapsed, DELAY)

    def test_malformed_input_is_delayed_and_raised(self):
        start = time.monotonic()
        with self.assertRaises(ValidationError):
            authenticate("", "pw", self.authority, self.settings)
        self.assertGreaterEqual(time.monotonic() - start, DELAY)

    def test_password_never_logged(self):
        with self.assertLogs("security", level="INFO") as logs:
            authenticate("alice", "hunter2-guess", self.authority, self.settings)
        self.assertFalse(any("hunter2-guess" in line for line in logs.output))

    def test_failure_delay_does_not_block_other_logins(self):
        failures = [
            threading.Thread(target=authenticate, args=("alice", "bad", self.authority, self.settings))
            for _ in range(5)
        ]
        for t in failures:
            t.start()
        principal, elapsed = self._timed("alice", "s3cret-pass")
        for t in failures:
            t.join()
        self.assertIsNotNone(principal)
        self.assertLess(elapsed, DELAY)


class UserStoreGateTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.tmp = tempfile.TemporaryDirectory()
        cls.db_path = f"{cls.tmp.name}/test.db"
        init_db(cls.db_path)
        cls.settings = Settings(auth_mode="multi", db_path=cls.db_path)
        cls.authority = UserStoreAuthority(cls.db_path)
        cls.alice = cls.authority.create_user("alice", "password123")

    @classmethod
    def tearDownClass(cls):
        cls.tmp.cleanup()

    def _last_login(self):
        with sqlite3.connect(self.db_path) as conn:
            return conn.execute("SELECT last_login FROM users WHERE id = ?", (self.alice.id,)).fetchone()[0]

    def test_success_updates_last_login(self):
        self.assertIsNone(self.alice.last_login)
        principal = authenticate("alice", "password123", self.authority, self.settings)
        self.assertEqual(principal.id, self.alice.id)
        self.assertIsNotNone(self._last_login())

    def test_failures_are_delayed_and_have_no_side_effect(self):
        before = self._last_login()
        for username, password in [("alice", "wrong-password"), ("mallory", "password123")]:
            with self.subTest(username=username):
                start = time.monotonic()
                self.assertIsNone(authenticate(username, password, self.authority, self.settings))
                self.assertGreaterEqual(time.monotonic() - start, DELAY)
        self.assertEqual(self._last_login(), before)

    def test_usernames_are_unique_and_case_sensitive(self):
        self.assertTrue(self.authority.username_taken("alice"))
        self.assertFalse(self.authority.username_taken("ALICE"))
        with self.assertRaises(ValidationError):
            self.authority.create_user("alice", "another-password")

    def test_password_hash_is_not_plaintext(self):
        with sqlite3.connect(self.db_path) as conn:
            (stored,) = conn.execute("SELECT password_hash FROM users WHERE id = ?", (self.alice.id,)).fetchone()
        self.assertNotIn("password123", stored)
        salt_hex, dk_hex = stored.split(":")
        self.assertEqual(len(bytes.fromhex(salt_hex)), 32)

    def test_unreachable_store_fails_login(self):
        broken = UserStoreAuthority(f"{self.tmp.name}/missing-dir/none.db")
        with self.assertLogs("security", level="ERROR"):
            self.assertIsNone(authenticate("alice", "password123", broken, self.settings))


if __name__ == "__main__":
    unittest.main()
