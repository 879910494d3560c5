import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from errors import LoglyError, ValidationError
from validation import (
    MAX_TEXT_ITEMS,
    iso_date,
    month_bounds,
    non_negative_number,
    optional_non_negative_number,
    optional_positive_int,
    optional_text,
    parse_json_array,
    positive_int,
    positive_number,
    required_text,
    text_array,
)


class ValidationTestCase(unittest.TestCase):
    def test_required_text(self) -> None:
        self.assertEqual(required_text("  Squat  ", "Name"), "Squat")
        for value in ("", "   ", None, 5):
            with self.assertRaises(ValidationError) as ctx:
                required_text(value, "Name")
            self.assertEqual(str(ctx.exception), "Name is required")

    def test_errors_are_value_errors(self) -> None:
        with self.assertRaises(ValueError):
            required_text("", "Name")
        self.assertTrue(issubclass(ValidationError, LoglyError))

    def test_optional_text(self) -> None:
        self.assertEqual(optional_text(" note "), "note")
        self.assertIsNone(optional_text("   "))
        self.assertIsNone(optional_text(3))

    def test_text_array(self) -> None:
        self.assertEqual(
            text_array(["Chest", " chest ", "", None, "Back", "CHEST"], "Muscles"),
            ["Chest", "Back"],
        )
        self.assertEqual(text_array("Chest", "Muscles"), [])
        self.assertEqual(len(text_array([f"t{i}" for i in range(MAX_TEXT_ITEMS)], "Tags")), 32)
        with self.assertRaises(ValidationError) as ctx:
            text_array([f"t{i}" for i in range(MAX_TEXT_ITEMS + 1)], "Tags")
        self.assertEqual(str(ctx.exception), "Tags has too many entries")

    def test_parse_json_array(self) -> None:
        self.assertEqual(parse_json_array('["a", 1, "b"]'), ["a", "b"])
        self.assertEqual(parse_json_array('{"a": 1}'), [])
        self.assertEqual(parse_json_array("not json"), [])
        self.assertEqual(parse_json_array(None), [])

    def test_positive_int(self) -> None:
        self.assertEqual(positive_int("12", "Reps"), 12)
        self.assertEqual(positive_int("8 reps", "Reps"), 8)
        self.assertEqual(positive_int(7.9, "Reps"), 7)
        for value in (0, -3, "abc", None, True, float("inf")):
            with self.assertRaises(ValidationError):
                positive_int(value, "Reps")

    def test_numbers(self) -> None:
        self.assertEqual(non_negative_number("0", "Weight"), 0.0)
        self.assertEqual(non_negative_number(42.5, "Weight"), 42.5)
        with self.assertRaises(ValidationError) as ctx:
            non_negative_number(-0.5, "Weight")
        self.assertEqual(str(ctx.exception), "Weight must be a non-negative number")
        self.assertEqual(positive_number("2.5", "Grams"), 2.5)
        with self.assertRaises(ValidationError) as ctx:
            positive_number(0, "Grams")
        self.assertEqual(str(ctx.exception), "Grams must be greater than zero")

    def test_soft_validators(self) -> None:
        self.assertIsNone(optional_positive_int(""))
        self.assertIsNone(optional_positive_int(0))
        self.assertIsNone(optional_positive_int("x"))
        self.assertEqual(optional_positive_int("5"), 5)
        self.assertIsNone(optional_non_negative_number(None))
        self.assertIsNone(optional_non_negative_number(-1))
        self.assertEqual(optional_non_negative_number("0"), 0.0)

    def test_leading_number_prefix(self) -> None:
        self.assertEqual(non_negative_number("12.5kg", "Weight"), 12.5)
        self.assertEqual(optional_non_negative_number(" 20 kg"), 20.0)
        self.assertEqual(positive_number("1e2g", "Grams"), 100.0)
        self.assertIsNone(optional_non_negative_number("kg 12"))

    def test_out_of_range_numbers(self) -> None:
        huge = 10**400
        with self.assertRaises(ValidationError) as ctx:
            non_negative_number(huge, "Weight")
        self.assertEqual(str(ctx.exception), "Weight must be a non-negative number")
        with self.assertRaises(ValidationError):
            positive_number(huge, "Grams")
        with self.assertRaises(ValidationError):
            non_negative_number("1e999", "Weight")
        self.assertIsNone(optional_non_negative_number(huge))

        with self.assertRaises(ValidationError) as ctx:
            positive_int(10**20, "Reps")
        self.assertEqual(str(ctx.exception), "Reps must be a positive integer")
        with self.assertRaises(ValidationError):
            positive_int("9" * 30, "Reps")
        with self.assertRaises(ValidationError):
            positive_int(1e300, "Reps")
        self.assertIsNone(optional_positive_int(10**20))
        self.assertIsNone(optional_positive_int("9" * 5000))
        self.assertEqual(positive_int(2**63 - 1, "Reps"), 2**63 - 1)

    def test_iso_date(self) -> None:
        self.assertEqual(iso_date(" 2024-02-29 ", "Date"), "2024-02-29")
        for value in ("2023-02-29", "2024-2-01", "01.02.2024", ""):
            with self.assertRaises(ValidationError):
                iso_date(value, "Date")

    def test_month_bounds(self) -> None:
        self.assertEqual(month_bounds("2024-02"), ("2024-02-01", "2024-02-29"))
        self.assertEqual(month_bounds("2023-02"), ("2023-02-01", "2023-02-28"))
        self.assertEqual(month_bounds("2024-12"), ("2024-12-01", "2024-12-31"))
        with self.assertRaises(ValidationError) as ctx:
            month_bounds("2024/02")
        self.assertEqual(str(ctx.exception), "Month must have format YYYY-MM")
        with self.assertRaises(ValidationError) as ctx:
            month_bounds("2024-00")
        self.assertEqual(str(ctx.exception), "Invalid month value")


if __name__ == "__main__":
    unittest.main()
