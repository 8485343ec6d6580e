import unittest

from config import Settings
from validation import (
    MAX_ID,
    Absent,
    ValidationError,
    classify,
    sanitize_string,
    validate_credential_field,
    validate_credentials,
    validate_flag,
    validate_id,
    validate_notes,
    validate_symptom_name,
)


class SanitizeTests(unittest.TestCase):
    def test_strips_nul_bytes_and_whitespace(self):
        self.assertEqual(sanitize_string("  head\x00ache \n"), "headache")

    def test_classify_marks_missing_and_wrong_type(self):
        self.assertIs(classify(None), Absent.MISSING)
        self.assertIs(classify(42), Absent.WRONG_TYPE)
        self.assertIs(classify(["a"]), Absent.WRONG_TYPE)
        self.assertEqual(classify("x"), "x")


class CredentialTests(unittest.TestCase):
    def setUp(self):
        self.settings = Settings()

    def test_valid_pair_is_trimmed(self):
        self.assertEqual(
            validate_credentials(" alice ", "pw\x00d", self.settings),
            ("alice", "pwd"),
        )

    def test_missing_or_empty_fields_fail(self):
        for username, password in [(None, "pw"), ("alice", None), ("", "pw"), ("alice", "   ")]:
            with self.subTest(username=username, password=password):
                with self.assertRaises(ValidationError):
                    validate_credentials(username, password, self.settings)

    def test_wrong_type_fails_with_format_message(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_credential_field(12345, "username", self.settings)
        self.assertEqual(ctx.exception.message, "Invalid credentials format")
        self.assertEqual(ctx.exception.field, "username")

    def test_length_bound(self):
        self.assertEqual(validate_credential_field("a" * 100, "username", self.settings), "a" * 100)
        with self.assertRaises(ValidationError) as ctx:
            validate_credential_field("a" * 101, "username", self.settings)
        self.assertEqual(ctx.exception.message, "Credentials too long")

    def test_byte_bound_for_multibyte_credentials(self):
        # 35 four-byte characters is exactly 140 bytes
        self.assertEqual(validate_credential_field("\U0001F600" * 35, "password", self.settings), "\U0001F600" * 35)
        for raw in ["\U0001F600" * 35 + "a", "\u75db" * 47]:
            with self.subTest(length=len(raw)):
                with self.assertRaises(ValidationError) as ctx:
                    validate_credential_field(raw, "username", self.settings)
                self.assertEqual(ctx.exception.message, "Credentials too long")


class SymptomNameTests(unittest.TestCase):
    def setUp(self):
        self.settings = Settings()

    def test_valid_name(self):
        self.assertEqual(validate_symptom_name("  Migraine ", self.settings), "Migraine")

    def test_sql_injection_attempt_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_symptom_name("'; DROP TABLE x; --", self.settings)
        self.assertEqual(ctx.exception.field, "name")

    def test_keywords_match_case_insensitively_on_word_boundaries(self):
        for bad in ["select", "Union all", "please exec", "DELETE"]:
            with self.subTest(bad=bad):
                with self.assertRaises(ValidationError):
                    validate_symptom_name(bad, self.settings)
        # Keywords embedded in longer words are fine
        self.assertEqual(validate_symptom_name("Selective pain", self.settings), "Selective pain")
        self.assertEqual(validate_symptom_name("Dropsy", self.settings), "Dropsy")

    def test_empty_after_sanitize_fails(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_symptom_name(" \x00 ", self.settings)
        self.assertEqual(ctx.exception.message, "Symptom name cannot be empty")

    def test_missing_and_wrong_type_fail(self):
        for raw in [None, "", 7]:
            with self.subTest(raw=raw):
                with self.assertRaises(ValidationError):
                    validate_symptom_name(raw, self.settings)

    def test_over_long_name_is_rejected_not_truncated(self):
        self.assertEqual(len(validate_symptom_name("n" * 100, self.settings)), 100)
        with self.assertRaises(ValidationError):
            validate_symptom_name("n" * 101, self.settings)


class NotesTests(unittest.TestCase):
    def setUp(self):
        self.settings = Settings()

    def test_none_and_blank_become_none(self):
        self.assertIsNone(validate_notes(None, self.settings))
        self.assertIsNone(validate_notes("", self.settings))
        self.assertIsNone(validate_notes("  \x00 ", self.settings))

    def test_text_is_sanitized(self):
        self.assertEqual(validate_notes(" after lunch ", self.settings), "after lunch")

    def test_wrong_type_fails(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_notes({"x": 1}, self.settings)
        self.assertEqual(ctx.exception.message, "Notes must be a string")

    def test_length_bound_rejects_over_long_notes(self):
        self.assertEqual(len(validate_notes("x" * 1000, self.settings)), 1000)
        with self.assertRaises(ValidationError):
            validate_notes("x" * 1001, self.settings)

    def test_limit_comes_from_settings(self):
        short = Settings(max_note_length=5)
        self.assertEqual(validate_notes("12345", short), "12345")
        with self.assertRaises(ValidationError):
            validate_notes("123456", short)


class IdTests(unittest.TestCase):
    def test_invalid_ids(self):
        for raw in ["abc", "0", "-5", "", None, "7.5", "7abc", 0, -1, True, 3.0,
                    str(MAX_ID + 1), MAX_ID + 1, "9" * 20, "9" * 5000]:
            with self.subTest(raw=raw):
                with self.assertRaises(ValidationError):
                    validate_id(raw)

    def test_valid_ids(self):
        self.assertEqual(validate_id("7"), 7)
        self.assertEqual(validate_id(" 12 "), 12)
        self.assertEqual(validate_id(3), 3)
        self.assertEqual(validate_id(str(MAX_ID)), MAX_ID)
        self.assertEqual(validate_id(MAX_ID), MAX_ID)

    def test_field_name_is_reported(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_id("x", "type_id")
        self.assertEqual(ctx.exception.field, "type_id")


class FlagTests(unittest.TestCase):
    def test_checkbox_values(self):
        self.assertEqual(validate_flag("on"), 1)
        self.assertEqual(validate_flag(None), 0)
        self.assertEqual(validate_flag("off"), 0)


if __name__ == "__main__":
    unittest.main()
