import re
import unittest
from datetime import datetime, timezone

from avatarlink.logid import LOG_ID_NANOID_LENGTH, _generate_log_id, generate_log_id


class TestLogID(unittest.TestCase):
    def test_format(self):
        now = datetime(2025, 10, 27, 14, 30, 34, tzinfo=timezone.utc)

        timestamp, suffix = _generate_log_id(now).split("_", 1)

        self.assertEqual(timestamp, "20251027143034")
        self.assertEqual(len(suffix), LOG_ID_NANOID_LENGTH)

    def test_ids_are_unique(self):
        ids = {generate_log_id() for _ in range(200)}
        self.assertEqual(len(ids), 200)
        for log_id in ids:
            self.assertRegex(log_id, re.compile(r"^\d{14}_.{12}$"))


if __name__ == "__main__":
    unittest.main()
