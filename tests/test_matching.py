from __future__ import annotations

import unittest

from roster_doctor.config import ColumnContract
from roster_doctor.core.extractor import extract_keyed_dataset
from roster_doctor.core.matching import classify, find_master_collisions, match_registrations
from roster_doctor.core.shared import KeyedDataset, MasterEntry, MasterMatch, MatchType, NewRegistration

CONTRACT = ColumnContract()
MASTER_ROWS = [
    ["チーム名", "送付先メアド(TO)", "送付先メアド(CC)"],
    ["Team A", "a@example.com", ""],
    ["営業部", "sales@example.com", ""],
]


class MasterCollisionTests(unittest.TestCase):
    def setUp(self):
        self.master = extract_keyed_dataset(MASTER_ROWS, CONTRACT)

    def test_flags_names_already_in_master_with_their_positions(self):
        rows = [
            ["Team Z", "x"],
            ["Ｔｅａｍ Ａ", "x"],
            ["", "x"],
            ["営業部\u200b", "x"],
        ]
        collisions = find_master_collisions(rows, self.master, 0)
        self.assertEqual([(c.team_name, c.position) for c in collisions], [("Team A", 2), ("営業部", 4)])

    def test_header_label_rows_and_short_rows_are_skipped(self):
        rows = [["x", "チーム名"], [], ["x"], ["x", "Team A"]]
        collisions = find_master_collisions(rows, self.master, 1)
        self.assertEqual([(c.team_name, c.position) for c in collisions], [("Team A", 4)])

    def test_invalid_index_is_logged_and_yields_nothing(self):
        for index in (-1, "1", None, True):
            with self.subTest(index=index):
                with self.assertLogs("roster_doctor.core.matching", level="WARNING") as logs:
                    self.assertEqual(find_master_collisions([["Team A"]], self.master, index), [])
                self.assertIn("Skipping master collision check", logs.output[0])

    def test_empty_master_never_collides(self):
        self.assertEqual(find_master_collisions([["Team A"]], KeyedDataset(), 0), [])


class ClassifyTests(unittest.TestCase):
    def test_exact_partial_and_unrelated(self):
        self.assertIs(classify("Team A", "Team A"), MatchType.EXACT)
        self.assertIs(classify("Super Team C", "Team C"), MatchType.PARTIAL)
        self.assertIs(classify("Team", "Team C"), MatchType.PARTIAL)
        self.assertIsNone(classify("Team A", "Team B"))

    def test_matching_is_case_sensitive(self):
        self.assertIsNone(classify("team a", "Team A"))


class MatchRegistrationsTests(unittest.TestCase):
    def test_groups_exact_and_partial_matches_per_name(self):
        master = [MasterEntry("Team A", 2), MasterEntry("Team C", 5)]
        records = [
            NewRegistration("Team A", 1),
            NewRegistration("Team B", 2),
            NewRegistration("Ｔｅａｍ Ａ", 3),
            NewRegistration("Super Team C", 4),
        ]
        results = match_registrations(records, master)
        self.assertEqual(len(results), 2)

        exact, partial = results
        self.assertIs(exact.match_type, MatchType.EXACT)
        self.assertEqual(exact.key, "Team A")
        self.assertEqual(exact.occurrence_positions, (1, 3))
        self.assertEqual(exact.matches, (MasterMatch("Team A", 2, "Team A"),))

        self.assertIs(partial.match_type, MatchType.PARTIAL)
        self.assertEqual(partial.key, "Super Team C")
        self.assertEqual(partial.occurrence_positions, (4,))
        self.assertEqual(partial.matched_targets, ("Team C",))
        self.assertEqual(partial.matched_keywords, ("Team C",))

    def test_registry_scenario_with_shared_word(self):
        master = [MasterEntry("Team A", 100), MasterEntry("Team B", 101), MasterEntry("Super Team C", 102)]
        records = [
            NewRegistration("Team A", 10),
            NewRegistration("Team B", 20),
            NewRegistration("X", 30),
            NewRegistration("Super Team C (JP)", 40),
            NewRegistration("Team", 50),
            NewRegistration("Team A", 60),
        ]
        results = {result.key: result for result in match_registrations(records, master)}

        self.assertEqual(set(results), {"Team A", "Team B", "Super Team C (JP)", "Team"})
        self.assertIs(results["Team A"].match_type, MatchType.EXACT)
        self.assertEqual(results["Team A"].occurrence_positions, (10, 60))
        self.assertEqual(results["Team A"].matched_target_rows, ("100",))
        self.assertEqual(results["Team B"].occurrence_positions, (20,))
        self.assertIs(results["Super Team C (JP)"].match_type, MatchType.PARTIAL)
        self.assertIn("102", results["Super Team C (JP)"].matched_target_rows)
        self.assertIs(results["Team"].match_type, MatchType.PARTIAL)
        self.assertEqual(results["Team"].to_report_row()[4], "100 / 101 / 102")
        self.assertEqual(results["Team"].to_report_row()[5], "Team A / Team B / Super Team C")

    def test_exact_match_suppresses_partial_matches_for_the_same_record(self):
        master = [MasterEntry("Team", 2), MasterEntry("Team A", 3)]
        results = match_registrations([NewRegistration("Team A", 1)], master)
        self.assertEqual(len(results), 1)
        self.assertIs(results[0].match_type, MatchType.EXACT)

    def test_partial_name_may_match_several_master_rows(self):
        master = [MasterEntry("Tokyo Sales", 2), MasterEntry("Osaka Sales", 3), MasterEntry("HR", 4)]
        results = match_registrations([NewRegistration("Sales", 7)], master)
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].matched_targets, ("Tokyo Sales", "Osaka Sales"))
        self.assertEqual(results[0].matched_target_rows, ("2", "3"))
        self.assertEqual(results[0].matched_keywords, ("Tokyo Sales", "Osaka Sales"))

    def test_repeated_master_rows_are_listed_once(self):
        master = [MasterEntry("Team A", 2)]
        records = [NewRegistration("Team A", 1), NewRegistration("Team A", 1)]
        results = match_registrations(records, master)
        self.assertEqual(results[0].occurrence_positions, (1,))
        self.assertEqual(len(results[0].matches), 1)

    def test_blank_names_never_match(self):
        results = match_registrations([NewRegistration(" ", 1)], [MasterEntry("", 2), MasterEntry("Team A", 3)])
        self.assertEqual(results, [])

    def test_report_row_layout(self):
        master = [MasterEntry("Tokyo Sales", 2), MasterEntry("Osaka Sales", 3)]
        result = match_registrations([NewRegistration("Sales", 7), NewRegistration("Sales", 9)], master)[0]
        self.assertEqual(
            result.to_report_row("row {row}"),
            ["Partial", "Sales", "7 : 9", "Tokyo Sales / Osaka Sales", "row 2 / row 3", "Tokyo Sales / Osaka Sales"],
        )

    def test_empty_inputs(self):
        self.assertEqual(match_registrations([], [MasterEntry("Team A", 2)]), [])
        self.assertEqual(match_registrations([NewRegistration("Team A", 1)], []), [])


if __name__ == "__main__":
    unittest.main()
