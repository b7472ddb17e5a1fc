"""
Unit tests for input validators
Tests validation for quantities, product choices and yes/no answers
"""
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import unittest
from validators import validate_quantity, validate_product_choice, validate_correction_kind
from utils import parse_yes_no, sanitize_text, format_choices


class TestValidators(unittest.TestCase):
    """Test cases for input validators"""

    # ---- Quantity Tests ----
    def test_valid_quantity(self):
        """Test valid whole quantities"""
        is_valid, result = validate_quantity("5")
        self.assertTrue(is_valid)
        self.assertEqual(result, 5)
        self.assertIsInstance(result, int)

        is_valid, result = validate_quantity("0")
        self.assertTrue(is_valid)
        self.assertEqual(result, 0)

    def test_valid_decimal_quantity(self):
        """Test that fractional stock is kept as a float"""
        is_valid, result = validate_quantity("2.5")
        self.assertTrue(is_valid)
        self.assertEqual(result, 2.5)

    def test_full_width_digits(self):
        """Test that full-width digits typed on a Japanese keyboard are accepted"""
        is_valid, result = validate_quantity("１２")
        self.assertTrue(is_valid)
        self.assertEqual(result, 12)

    def test_invalid_quantity_not_number(self):
        """Test that non-numeric input is rejected"""
        for text in ["abc", "", "  ", "五", "nan", "inf"]:
            is_valid, message = validate_quantity(text)
            self.assertFalse(is_valid, f"Accepted {text!r}")
            self.assertIn("数字のみ", message)

    def test_invalid_quantity_negative(self):
        """Test that negative stock is rejected"""
        is_valid, message = validate_quantity("-3")
        self.assertFalse(is_valid)
        self.assertIn("0以上", message)

    # ---- Product Choice Tests ----
    def test_valid_product_choice(self):
        is_valid, result = validate_product_choice("プリン", ["キャベツ", "プリン", "カレー"])
        self.assertTrue(is_valid)
        self.assertEqual(result, "プリン")

    def test_invalid_product_choice(self):
        is_valid, message = validate_product_choice("トマト", ["キャベツ", "プリン", "カレー"])
        self.assertFalse(is_valid)
        self.assertIn("「キャベツ」「プリン」「カレー」", message)

    # ---- Correction Kind Tests ----
    def test_correction_kind(self):
        self.assertEqual(validate_correction_kind("残数"), (True, "残数"))
        self.assertEqual(validate_correction_kind("発注数"), (True, "発注数"))
        is_valid, _ = validate_correction_kind("在庫")
        self.assertFalse(is_valid)


class TestUtils(unittest.TestCase):
    """Test cases for reply helpers"""

    def test_parse_yes_no(self):
        """Only the two keywords count as an answer"""
        self.assertTrue(parse_yes_no("はい"))
        self.assertFalse(parse_yes_no("いいえ"))
        self.assertIsNone(parse_yes_no("yes"))
        self.assertIsNone(parse_yes_no("はいはい"))

    def test_sanitize_text(self):
        self.assertEqual(sanitize_text("  5 \n"), "5")
        self.assertEqual(sanitize_text("a\0b"), "ab")
        self.assertEqual(len(sanitize_text("x" * 600)), 500)

    def test_format_choices(self):
        self.assertEqual(format_choices(["キャベツ", "プリン"]), "キャベツ／プリン")


if __name__ == '__main__':
    unittest.main()
