import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

from openpyxl import Workbook

from roster_doctor import loader


def write_workbook(path: Path, sheets: dict) -> Path:
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
    wb.save(path)
    return path


class TextLoaderTests(unittest.TestCase):
    def test_csv_with_bom_and_ragged_rows(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "roster.csv"
            path.write_bytes("\ufeffチーム名,送付先メアド(TO)\nTeam A,a@example.com,extra\nTeam B\n\n".encode("utf-8"))
            result = loader.load_rows(path)
        self.assertEqual(result["rows"], [["チーム名", "送付先メアド(TO)"], ["Team A", "a@example.com", "extra"], ["Team B"]])
        self.assertEqual(result["detected_format"], "csv")
        self.assertEqual(result["delimiter"], ",")
        self.assertIsNone(result["sheet_name"])

    def test_quoted_multiline_cells_stay_in_one_row(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "roster.csv"
            path.write_text('name,to\nTeam A,"a@example.com\nb@example.com"\n', encoding="utf-8")
            rows = loader.load_rows(path)["rows"]
        self.assertEqual(rows[1], ["Team A", "a@example.com\nb@example.com"])

    def test_shift_jis_export_is_decoded(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "roster.csv"
            path.write_bytes("チーム名,送付先\n営業部,a@example.com\n".encode("cp932"))
            rows = loader.load_rows(path)["rows"]
        self.assertEqual(rows[1][0], "営業部")

    def test_tsv_uses_tab(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "roster.tsv"
            path.write_text("a\tb\n1\t2\n", encoding="utf-8")
            result = loader.load_rows(path)
        self.assertEqual(result["delimiter"], "\t")
        self.assertEqual(result["rows"], [["a", "b"], ["1", "2"]])

    def test_missing_file_and_unknown_extension(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(FileNotFoundError):
                loader.load_rows(Path(tmpdir) / "missing.csv")
            other = Path(tmpdir) / "notes.pdf"
            other.write_bytes(b"%PDF")
            with self.assertRaisesRegex(ValueError, "Unsupported file type"):
                loader.load_rows(other)


class WorkbookLoaderTests(unittest.TestCase):
    def test_reads_named_sheet_as_display_strings(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_workbook(
                Path(tmpdir) / "roster.xlsx",
                {"other": [["x"]], "5.設定上書き": [["チーム名", "抽出期間(Nか月)"], ["Team A", 3], [None, None]]},
            )
            result = loader.load_rows(path, sheet_name="5.設定上書き")
        self.assertEqual(result["rows"], [["チーム名", "抽出期間(Nか月)"], ["Team A", "3"]])
        self.assertEqual(result["sheet_names"], ["other", "5.設定上書き"])
        self.assertEqual(result["warnings"], [])

    def test_default_sheet_is_preferred_when_present(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_workbook(Path(tmpdir) / "roster.xlsx", {"first": [["a"]], "settings": [["b"]]})
            result = loader.load_rows(path, default_sheet="settings")
        self.assertEqual(result["sheet_name"], "settings")
        self.assertEqual(result["warnings"], [])

    def test_first_sheet_is_used_with_a_warning_otherwise(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_workbook(Path(tmpdir) / "roster.xlsx", {"first": [["a"]], "second": [["b"]]})
            result = loader.load_rows(path, default_sheet="settings")
        self.assertEqual(result["sheet_name"], "first")
        self.assertIn("Multiple sheets found", result["warnings"][0])

    def test_unknown_sheet_is_an_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_workbook(Path(tmpdir) / "roster.xlsx", {"first": [["a"]]})
            with self.assertRaisesRegex(ValueError, "Sheet 'nope' not found"):
                loader.load_rows(path, sheet_name="nope")

    def test_cell_range_keeps_sheet_coordinates(self):
        rows = [[f"{col}{row}" for col in "ABCD"] for row in range(1, 6)]
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_workbook(Path(tmpdir) / "roster.xlsx", {"data": rows})
            result = loader.load_rows(path, cell_range="B3:C")
        self.assertEqual(result["rows"], [["B3", "C3"], ["B4", "C4"], ["B5", "C5"]])

    def test_corrupt_workbook_raises_value_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "broken.xlsx"
            path.write_bytes(b"not a zip")
            with self.assertRaisesRegex(ValueError, "Could not open workbook"):
                loader.load_rows(path)


class RangeAndBackupTests(unittest.TestCase):
    def test_slice_range(self):
        rows = [["a1", "b1", "c1"], ["a2", "b2", "c2"], ["a3", "b3"]]
        self.assertEqual(loader.slice_range(rows, "B2:C3"), [["b2", "c2"], ["b3"]])
        self.assertEqual(loader.slice_range(rows, "A3:B"), [["a3", "b3"]])
        self.assertEqual(loader.range_start_row("B21:L"), 21)

    def test_parse_range_accepts_half_open_and_absolute_ranges(self):
        self.assertEqual(loader.parse_range("B21:L"), (2, 21, 12, None))
        self.assertEqual(loader.parse_range("$A$2:$C$100"), (1, 2, 3, 100))
        self.assertEqual(loader.parse_range("B18:L18"), (2, 18, 12, 18))
        self.assertEqual(loader.range_start_col("AA5"), 27)
        with self.assertRaisesRegex(ValueError, "Invalid cell range"):
            loader.parse_range("not a range")
        with self.assertRaises(ValueError):
            loader.parse_range("")

    def test_backup_sheet_name_uses_short_timestamp(self):
        self.assertEqual(loader.backup_sheet_name("5.設定上書き", datetime(2026, 3, 1, 9, 5)), "5.設定上書き260301-0905")

    def test_latest_backup_sheet_picks_newest_matching_tab(self):
        names = ["5.設定上書き", "5.設定上書き260101-0900", "5.設定上書き260301-0905", "5.設定上書きcopy", "other260401-0000"]
        self.assertEqual(loader.latest_backup_sheet(names, "5.設定上書き"), "5.設定上書き260301-0905")
        self.assertIsNone(loader.latest_backup_sheet(["5.設定上書き"], "5.設定上書き"))


class RemoteLoaderTests(unittest.TestCase):
    def test_remote_source_is_downloaded_then_loaded(self):
        def fake_fetch(url, folder):
            path = Path(folder) / "roster.csv"
            path.write_text("a,b\n1,2\n", encoding="utf-8")
            return path

        with mock.patch.object(loader, "fetch_remote_source", side_effect=fake_fetch) as fetch:
            result = loader.load_rows("https://example.com/roster.csv")
        fetch.assert_called_once()
        self.assertEqual(result["source"], "https://example.com/roster.csv")
        self.assertEqual(result["rows"], [["a", "b"], ["1", "2"]])


if __name__ == "__main__":
    unittest.main()
