"""
Unit tests for the business date policy
"""
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import unittest
from datetime import datetime, timedelta, timezone
from business_date import business_date, local_timestamp

JST = timezone(timedelta(hours=9))


class TestBusinessDate(unittest.TestCase):
    """Cutoff handling in a fixed UTC+9 offset"""

    def test_before_cutoff_uses_previous_day(self):
        now = datetime(2024, 5, 2, 10, 59, tzinfo=JST)
        self.assertEqual(business_date(now, cutoff_hour=11, utc_offset_hours=9), "2024/05/01")

    def test_at_cutoff_uses_today(self):
        now = datetime(2024, 5, 2, 11, 0, tzinfo=JST)
        self.assertEqual(business_date(now, cutoff_hour=11, utc_offset_hours=9), "2024/05/02")

    def test_utc_input_is_converted(self):
        """01:30 UTC is 10:30 JST, still before the cutoff"""
        now = datetime(2024, 5, 2, 1, 30, tzinfo=timezone.utc)
        self.assertEqual(business_date(now, cutoff_hour=11, utc_offset_hours=9), "2024/05/01")

    def test_naive_input_is_utc(self):
        now = datetime(2024, 5, 2, 3, 0)
        self.assertEqual(business_date(now, cutoff_hour=11, utc_offset_hours=9), "2024/05/02")

    def test_month_boundary(self):
        now = datetime(2024, 3, 1, 0, 5, tzinfo=JST)
        self.assertEqual(business_date(now, cutoff_hour=11, utc_offset_hours=9), "2024/02/29")

    def test_zero_cutoff_never_shifts(self):
        now = datetime(2024, 5, 2, 0, 0, tzinfo=JST)
        self.assertEqual(business_date(now, cutoff_hour=0, utc_offset_hours=9), "2024/05/02")

    def test_local_timestamp(self):
        now = datetime(2024, 5, 2, 0, 0, 5, tzinfo=timezone.utc)
        self.assertEqual(local_timestamp(now, utc_offset_hours=9), "2024-05-02 09:00:05")


if __name__ == '__main__':
    unittest.main()
