from __future__ import annotations

import unittest

from attendance_admin.services.identifiers import (
    as_text,
    generate_random_pin,
    manager_id_candidates,
    pad_employee_number,
    split_team_members,
    to_master_sheet_id,
)


class MasterSheetIdTests(unittest.TestCase):
    def test_equivalent_spellings_map_to_one_id(self) -> None:
        for raw in (7, 7.0, "7", "0007", " 7 ", "emp7", "EMP0007", "Emp 0007"):
            with self.subTest(raw=raw):
                self.assertEqual(to_master_sheet_id(raw), "EMP0007")

    def test_idempotent(self) -> None:
        for raw in ("1", "0042", "EMP0042", "12345", "emp12345"):
            with self.subTest(raw=raw):
                once = to_master_sheet_id(raw)
                self.assertEqual(to_master_sheet_id(once), once)

    def test_long_numbers_are_not_truncated(self) -> None:
        self.assertEqual(pad_employee_number("12345"), "12345")
        self.assertEqual(to_master_sheet_id("12345"), "EMP12345")

    def test_custom_width(self) -> None:
        self.assertEqual(pad_employee_number("7", width=6), "000007")


class TextAndPinTests(unittest.TestCase):
    def test_as_text(self) -> None:
        self.assertEqual(as_text(None), "")
        self.assertEqual(as_text(1234.0), "1234")
        self.assertEqual(as_text(12.5), "12.5")
        self.assertEqual(as_text(True), "true")

    def test_random_pin_is_four_digits(self) -> None:
        for _ in range(200):
            pin = generate_random_pin()
            self.assertEqual(len(pin), 4)
            self.assertTrue(1000 <= int(pin) <= 9999)


class TeamTokenTests(unittest.TestCase):
    def test_split_comma_separated_text(self) -> None:
        self.assertEqual(split_team_members(" 1, 2 ,,3 "), ["1", "2", "3"])

    def test_split_sequence(self) -> None:
        self.assertEqual(split_team_members([1, " 2", "", None]), ["1", "2"])

    def test_manager_id_candidates(self) -> None:
        self.assertEqual(manager_id_candidates("EMP0001"), ["EMP0001", "0001"])
        self.assertEqual(manager_id_candidates("0001"), ["0001", "EMP0001"])
        self.assertEqual(manager_id_candidates("EMP"), ["EMP"])
        self.assertEqual(manager_id_candidates(None), [])


if __name__ == "__main__":
    unittest.main()
