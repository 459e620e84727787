from __future__ import annotations

import unittest

from roster_doctor.config import ColumnContract
from roster_doctor.core.registrations import (
    find_header_index,
    master_entries,
    select_new_registrations,
    sheet_row,
)
from roster_doctor.errors import MissingColumnError

CONTRACT = ColumnContract()
HEADER = ["", "ブイキューブ発注番号", "申込日", "チーム名 (必須)"]


def data(*pairs):
    return [["", order, "2026/01/01", team] for order, team in pairs]


class HeaderLookupTests(unittest.TestCase):
    def test_matches_labels_by_substring(self):
        self.assertEqual(find_header_index(HEADER, ["チーム名"]), 3)
        self.assertEqual(find_header_index(["No", "Team Name"], ["チーム名", "Team Name"]), 1)

    def test_missing_label_gives_minus_one(self):
        self.assertEqual(find_header_index(["a", None], ["チーム名"]), -1)
        self.assertEqual(find_header_index(["a"], ["", None]), -1)

    def test_sheet_row_is_one_based_from_the_block_start(self):
        self.assertEqual(sheet_row(21, 1), 21)
        self.assertEqual(sheet_row(21, 5), 25)


class SelectNewRegistrationsTests(unittest.TestCase):
    def test_without_history_every_row_is_new(self):
        rows = data(("V-001", "Team A"), ("", ""), ("V-002", "Team B"))
        batch = select_new_registrations(HEADER, rows, 21, "", CONTRACT)
        self.assertEqual([(r.team_name, r.position, r.order_number) for r in batch.records], [
            ("Team A", 21, "V-001"),
            ("Team B", 23, "V-002"),
        ])
        self.assertEqual((batch.last_order_number, batch.last_team_name), ("V-002", "Team B"))
        self.assertTrue(batch.found_previous)

    def test_only_rows_after_the_last_processed_order_are_collected(self):
        rows = data(("V-001", "Team A"), ("V-002", "Team B"), ("V-003", "Team C"))
        batch = select_new_registrations(HEADER, rows, 21, "V-001", CONTRACT)
        self.assertEqual([r.team_name for r in batch.records], ["Team B", "Team C"])
        self.assertEqual(batch.last_order_number, "V-003")

    def test_nothing_new_keeps_the_previous_order_number(self):
        rows = data(("V-001", "Team A"))
        batch = select_new_registrations(HEADER, rows, 21, "V-001", CONTRACT)
        self.assertEqual(batch.records, [])
        self.assertEqual(batch.last_order_number, "V-001")
        self.assertEqual(batch.last_team_name, "")

    def test_vanished_previous_order_collects_nothing(self):
        rows = data(("V-002", "Team B"))
        batch = select_new_registrations(HEADER, rows, 21, "V-001", CONTRACT)
        self.assertEqual(batch.records, [])
        self.assertFalse(batch.found_previous)

    def test_rows_without_team_name_are_not_registrations(self):
        rows = data(("V-001", ""), ("V-002", "Team B"))
        batch = select_new_registrations(HEADER, rows, 21, "", CONTRACT)
        self.assertEqual([r.position for r in batch.records], [22])

    def test_missing_headers_raise(self):
        with self.assertRaises(MissingColumnError) as ctx:
            select_new_registrations(["", "申込日"], [], 21, "", CONTRACT, source="orders")
        self.assertEqual(ctx.exception.missing, ["チーム名", "ブイキューブ発注番号"])


class MasterEntriesTests(unittest.TestCase):
    def test_lists_named_rows_with_sheet_row_numbers(self):
        rows = [["チーム名", "x"], ["Team A", ""], ["", ""], [" Team B ", ""]]
        entries = master_entries(rows, CONTRACT)
        self.assertEqual([(e.name, e.row) for e in entries], [("Team A", 2), ("Team B", 4)])

    def test_no_team_header_gives_no_entries(self):
        self.assertEqual(master_entries([["Name"], ["Team A"]], CONTRACT), [])
        self.assertEqual(master_entries([], CONTRACT), [])


if __name__ == "__main__":
    unittest.main()
