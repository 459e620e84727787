from __future__ import annotations

import unittest

from roster_doctor.core.transform import (
    column_index,
    consolidate_team_rows,
    drop_rows_without_recipients,
    format_cell,
    parse_mapping_rules,
    remove_blank_rows,
    run_transfer,
    transform_headers,
    transform_rows,
)

MAPPING = [
    ["C", "A", "チーム名"],
    ["E", "B", "稼働率レポート送付先（To）"],
    ["F", "C", "稼働率レポート送付先（CC）"],
    ["D", "D", "開始日"],
]


class MappingRuleTests(unittest.TestCase):
    def test_column_letters(self):
        self.assertEqual(column_index("A"), 0)
        self.assertEqual(column_index(" ab "), 27)
        self.assertEqual(column_index("1"), -1)
        self.assertEqual(column_index(""), -1)

    def test_parses_rules_and_skips_blank_or_invalid_rows(self):
        rows = [*MAPPING, ["", "", ""], ["C1", "A", "bad"]]
        with self.assertLogs("roster_doctor.core.transform", level="WARNING") as logs:
            rules = parse_mapping_rules(rows)
        self.assertEqual([(r.source_index, r.target_index) for r in rules], [(2, 0), (4, 1), (5, 2), (3, 3)])
        self.assertIn("Invalid column mapping at row 6", logs.output[0])


class FormatCellTests(unittest.TestCase):
    def test_dates_are_written_as_year_month_day(self):
        self.assertEqual(format_cell("2026-3-1"), "2026/03/01")
        self.assertEqual(format_cell("2026-03-01 00:00:00"), "2026/03/01")
        self.assertEqual(format_cell("3/1/2026"), "2026/03/01")
        self.assertEqual(format_cell("20260301"), "2026/03/01")

    def test_decimals_are_rounded_to_two_places(self):
        self.assertEqual(format_cell("3.14159"), "3.14")
        self.assertEqual(format_cell("2.50"), "2.5")
        self.assertEqual(format_cell("4.0"), "4")

    def test_other_text_is_kept(self):
        for value in ["", "Team A", "a@example.com", "2026-13-45", "12"]:
            with self.subTest(value=value):
                self.assertEqual(format_cell(value), value)


class StageTests(unittest.TestCase):
    def setUp(self):
        self.rules = parse_mapping_rules(MAPPING)

    def test_projects_source_columns_onto_target_layout(self):
        rows = [["x", "y", "Team A", "2026-03-01", "a@example.com", "c@example.com"]]
        self.assertEqual(
            transform_rows(rows, self.rules),
            [["Team A", "a@example.com", "c@example.com", "2026/03/01"]],
        )

    def test_rows_with_nothing_mapped_are_dropped(self):
        rows = [["x", "y", "", "", "", ""], [], ["", "", " ", "", "", ""]]
        self.assertEqual(transform_rows(rows, self.rules), [])

    def test_no_rules_transforms_nothing(self):
        with self.assertLogs("roster_doctor.core.transform", level="WARNING"):
            self.assertEqual(transform_rows([["a"]], []), [])

    def test_headers_fall_back_to_rule_description(self):
        headers = transform_headers([["", "", "Team", "", "", ""]], self.rules)
        self.assertEqual(headers, [["Team", "稼働率レポート送付先（To）", "稼働率レポート送付先（CC）", "開始日"]])

    def test_remove_blank_rows_treats_whitespace_as_blank(self):
        self.assertEqual(remove_blank_rows([["a"], [" ", "\n"], ["", "b"]]), [["a"], ["", "b"]])

    def test_continuation_rows_fold_into_their_team(self):
        rows = [
            ["", "orphan@example.com", ""],
            ["Team A", "a@example.com", "", ""],
            ["", "b@example.com", "c@example.com", "note"],
            ["", "a@example.com", "", "ignored"],
            ["Team B", "", "", ""],
        ]
        self.assertEqual(
            consolidate_team_rows(rows),
            [
                ["Team A", "a@example.com\nb@example.com", "c@example.com", "note"],
                ["Team B", "", "", ""],
            ],
        )

    def test_teams_without_any_recipient_are_dropped(self):
        rows = [["Team A", "a@example.com", ""], ["Team B", " ", ""], ["Team C", "", "c@example.com"]]
        self.assertEqual([r[0] for r in drop_rows_without_recipients(rows, 1, 2)], ["Team A", "Team C"])

    def test_run_transfer_keeps_every_stage(self):
        rows = [
            ["", "", "Team A", "", "a@example.com", ""],
            ["", "", "", "", "b@example.com", ""],
            ["", "", "", "", "", ""],
            ["", "", "Team B", "", "", ""],
        ]
        result = run_transfer(rows, self.rules)
        self.assertEqual(result.stage_counts(), {"transformed": 3, "without_blanks": 3, "consolidated": 2, "cleaned": 1})
        self.assertEqual(result.cleaned, [["Team A", "a@example.com\nb@example.com", "", ""]])

    def test_missing_recipient_rules_skip_filtering(self):
        rules = parse_mapping_rules([["A", "A", "チーム名"]])
        with self.assertLogs("roster_doctor.core.transform", level="WARNING"):
            result = run_transfer([["Team A"]], rules)
        self.assertEqual(result.cleaned, [["Team A"]])


if __name__ == "__main__":
    unittest.main()
