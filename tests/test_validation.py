import unittest
from datetime import date

from gradetrackr.core.models import AssessmentType
from gradetrackr.core.validation import (
    ValidationError,
    parse_description,
    parse_grade_value,
    parse_subject_name,
    parse_target,
    parse_test_date,
    parse_test_type,
    parse_weight,
)


class GradeInputTests(unittest.TestCase):
    def test_grade_bounds(self):
        self.assertEqual(parse_grade_value("1"), 1.0)
        self.assertEqual(parse_grade_value(10), 10.0)
        with self.assertRaises(ValidationError):
            parse_grade_value("0.9")
        with self.assertRaises(ValidationError):
            parse_grade_value("10.1")

    def test_grade_accepts_decimal_comma(self):
        self.assertEqual(parse_grade_value("7,5"), 7.5)

    def test_grade_is_required(self):
        with self.assertRaises(ValidationError):
            parse_grade_value("  ")
        with self.assertRaises(ValidationError):
            parse_grade_value("abc")

    def test_weight(self):
        self.assertEqual(parse_weight(""), 1.0)
        self.assertEqual(parse_weight("2"), 2.0)
        with self.assertRaises(ValidationError):
            parse_weight("0")
        with self.assertRaises(ValidationError):
            parse_weight("-1")

    def test_target(self):
        self.assertIsNone(parse_target(""))
        self.assertIsNone(parse_target(None))
        self.assertEqual(parse_target("7.5"), 7.5)
        with self.assertRaises(ValidationError):
            parse_target("11")

    def test_validation_error_is_value_error(self):
        self.assertTrue(issubclass(ValidationError, ValueError))


class OtherFieldTests(unittest.TestCase):
    def test_test_type(self):
        self.assertIs(parse_test_type(""), AssessmentType.SO)
        self.assertIs(parse_test_type("Mondeling"), AssessmentType.MONDELING)
        with self.assertRaises(ValidationError):
            parse_test_type("Quiz")

    def test_test_date(self):
        self.assertEqual(parse_test_date("2024-03-14"), date(2024, 3, 14))
        self.assertEqual(parse_test_date(""), date.today())
        with self.assertRaises(ValidationError):
            parse_test_date("14-03-2024")

    def test_subject_name(self):
        self.assertEqual(parse_subject_name("  Wiskunde B "), "Wiskunde B")
        with self.assertRaises(ValidationError):
            parse_subject_name("   ")

    def test_description(self):
        self.assertIsNone(parse_description(""))
        self.assertEqual(parse_description(" Hoofdstuk 3 "), "Hoofdstuk 3")


if __name__ == "__main__":
    unittest.main()
