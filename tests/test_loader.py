import io
import tempfile
import unittest
from pathlib import Path

from openpyxl import Workbook

from data_alchemist.loader import load_bytes, load_file


def workbook_bytes(sheets: dict[str, list[list]]) -> bytes:
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class TextLoaderTests(unittest.TestCase):
    def test_csv_values_stay_strings_and_blanks_become_none(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "tasks.csv"
            path.write_text('TaskID,Duration,RequiredSkills\nT1,03,"python,sql"\nT2,,\n', encoding="utf-8")
            result = load_file(path)
        self.assertEqual(result["headers"], ["TaskID", "Duration", "RequiredSkills"])
        self.assertEqual(result["records"][0], {"TaskID": "T1", "Duration": "03", "RequiredSkills": "python,sql"})
        self.assertIsNone(result["records"][1]["Duration"])
        self.assertEqual(result["detected_format"], "csv")
        self.assertEqual(result["delimiter"], ",")

    def test_semicolon_delimiter_and_bom(self):
        raw = "\ufeffClientID;ClientName\nC1;Acme\nC2;Globex\n".encode("utf-8")
        result = load_bytes(raw, "clients.csv")
        self.assertEqual(result["delimiter"], ";")
        self.assertEqual(result["headers"], ["ClientID", "ClientName"])
        self.assertEqual(len(result["records"]), 2)

    def test_tsv_uses_tabs(self):
        result = load_bytes(b"WorkerID\tSkills\nW1\tpython,sql\n", "workers.tsv")
        self.assertEqual(result["records"], [{"WorkerID": "W1", "Skills": "python,sql"}])

    def test_latin1_text_is_decoded(self):
        raw = "ClientID,ClientName\nC1,Caf\xe9 Ltd\n".encode("latin-1")
        result = load_bytes(raw, "clients.csv")
        name = result["records"][0]["ClientName"]
        self.assertTrue(name.startswith("Caf") and name.endswith(" Ltd"))
        self.assertEqual(len(name), 8)

    def test_empty_file_is_rejected(self):
        with self.assertRaisesRegex(ValueError, "empty"):
            load_bytes(b"  \n", "clients.csv")


class WorkbookLoaderTests(unittest.TestCase):
    def test_first_sheet_is_used_with_warning(self):
        raw = workbook_bytes({"Tasks": [["TaskID", "Duration"], ["T1", 3]], "Notes": [["x"], ["y"]]})
        result = load_bytes(raw, "tasks.xlsx")
        self.assertEqual(result["sheet_name"], "Tasks")
        self.assertEqual(result["sheet_names"], ["Tasks", "Notes"])
        self.assertEqual(result["records"], [{"TaskID": "T1", "Duration": "3"}])
        self.assertEqual(len(result["warnings"]), 1)

    def test_named_sheet(self):
        raw = workbook_bytes({"Tasks": [["TaskID"], ["T1"]], "Workers": [["WorkerID"], ["W1"]]})
        result = load_bytes(raw, "data.xlsx", sheet_name="Workers")
        self.assertEqual(result["records"], [{"WorkerID": "W1"}])
        self.assertEqual(result["warnings"], [])
        with self.assertRaisesRegex(ValueError, "not found"):
            load_bytes(raw, "data.xlsx", sheet_name="Missing")

    def test_corrupt_workbook_is_a_value_error(self):
        with self.assertRaisesRegex(ValueError, "Could not open workbook"):
            load_bytes(b"PK\x03\x04not really a zip", "broken.xlsx")


class LoadFileTests(unittest.TestCase):
    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_file("/definitely/not/here.csv")

    def test_unsupported_suffix(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "data.json"
            path.write_text("[]", encoding="utf-8")
            with self.assertRaisesRegex(ValueError, "Unsupported format"):
                load_file(path)


if __name__ == "__main__":
    unittest.main()
