import unittest
from types import SimpleNamespace

from data_alchemist.remote import infer_extension, is_remote_source, normalize_public_url, remote_filename


def fake_response(headers=None, url=""):
    return SimpleNamespace(headers=headers or {}, url=url)


class NormalizeUrlTests(unittest.TestCase):
    def test_github_blob_becomes_raw(self):
        self.assertEqual(
            normalize_public_url("https://github.com/acme/data/blob/main/sample/clients.csv"),
            "https://raw.githubusercontent.com/acme/data/main/sample/clients.csv",
        )

    def test_dropbox_forces_download(self):
        self.assertEqual(
            normalize_public_url("https://www.dropbox.com/s/abc/tasks.xlsx?dl=0"),
            "https://www.dropbox.com/s/abc/tasks.xlsx?dl=1",
        )

    def test_google_sheet_exports_csv(self):
        self.assertEqual(
            normalize_public_url("https://docs.google.com/spreadsheets/d/SHEET123/edit#gid=0"),
            "https://docs.google.com/spreadsheets/d/SHEET123/export?format=csv&gid=0",
        )
        self.assertEqual(
            normalize_public_url("https://docs.google.com/spreadsheets/d/SHEET123/edit?gid=42"),
            "https://docs.google.com/spreadsheets/d/SHEET123/export?format=csv&gid=42",
        )

    def test_drive_file_link(self):
        self.assertEqual(
            normalize_public_url("https://drive.google.com/file/d/FILE9/view?usp=sharing"),
            "https://drive.google.com/uc?export=download&id=FILE9",
        )

    def test_other_hosts_pass_through(self):
        self.assertEqual(normalize_public_url(" https://example.com/a.csv "), "https://example.com/a.csv")
        with self.assertRaises(ValueError):
            normalize_public_url("example.com/a.csv")

    def test_remote_source_detection(self):
        self.assertTrue(is_remote_source("https://example.com/a.csv"))
        self.assertFalse(is_remote_source("sample-data/clients.csv"))


class FilenameTests(unittest.TestCase):
    def test_content_disposition_wins(self):
        response = fake_response({"content-disposition": 'attachment; filename="workers.xlsx"'})
        self.assertEqual(remote_filename("https://example.com/download", response), "workers.xlsx")

    def test_falls_back_to_url_path(self):
        response = fake_response(url="https://cdn.example.com/files/tasks.csv")
        self.assertEqual(remote_filename("https://example.com/x", response), "tasks.csv")

    def test_extension_from_content(self):
        response = fake_response({"content-type": "application/octet-stream"})
        self.assertEqual(infer_extension("https://example.com/x", response, "x", b"a\tb\n1\t2\n"), ".tsv")
        self.assertEqual(infer_extension("https://example.com/x", response, "x", b"a,b\n1,2\n"), ".csv")
        csv_response = fake_response({"content-type": "text/csv; charset=utf-8"})
        self.assertEqual(infer_extension("https://example.com/x", csv_response, "x", b""), ".csv")


if __name__ == "__main__":
    unittest.main()
