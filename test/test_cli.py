"""CLI tests using click's CliRunner against a temporary SQLite store."""

from __future__ import annotations

import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import yaml
from click.testing import CliRunner

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from BookReport.cli.ui import cli


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = Path(tempfile.mkdtemp())
        config = {
            "log": {"level": "INFO", "to_file": False, "dir": str(self.tmp / "log")},
            "report": {"entries": []},
            "store": {"backend": "sqlite", "collection": "books", "sqlite": {"path": str(self.tmp / "books.db")}},
            "output": {"base_dir": str(self.tmp / "output"), "formats": ["console", "json"]},
            "seed": {"path": str(REPO_ROOT / "data" / "books.yml")},
        }
        self.config_path = self.tmp / "config.yml"
        self.config_path.write_text(yaml.safe_dump(config), encoding="utf-8")
        self.runner = CliRunner()

    def invoke(self, *args: str):
        return self.runner.invoke(cli, ["--config", str(self.config_path), *args])

    def test_seed_then_run_selected_entries(self) -> None:
        seeded = self.invoke("seed", "--drop")
        self.assertEqual(seeded.exit_code, 0, seeded.output)
        self.assertIn("Inserted 15 books", seeded.output)

        result = self.invoke("run", "--only", "fiction_books", "--only", "update_1984_price")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Books in Fiction genre:", result.output)
        self.assertIn("- The Great Gatsby", result.output)
        self.assertIn('Updated price of "1984": 1 document(s) modified', result.output)
        self.assertIn("Disconnected from sqlite", result.output)

        json_files = list((self.tmp / "output" / "json").glob("run_*.json"))
        self.assertEqual(len(json_files), 1)
        payload = json.loads(json_files[0].read_text(encoding="utf-8"))
        self.assertEqual([item["name"] for item in payload], ["fiction_books", "update_1984_price"])

    def test_unknown_entry_aborts(self) -> None:
        result = self.invoke("run", "--only", "no_such_entry")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Report failed", result.output)

    def test_failing_entry_still_disconnects(self) -> None:
        with patch("BookReport.services.report.ReportRunner.run_entry", side_effect=RuntimeError("boom")):
            result = self.invoke("run", "--only", "fiction_books")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Disconnected from sqlite", result.output)
        self.assertIn("Report failed: boom", result.output)

    def test_catalog_lists_entries_without_store(self) -> None:
        result = self.invoke("catalog")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("fiction_books: Books in Fiction genre", result.output)
        self.assertIn("explain_author_year", result.output)
        self.assertFalse((self.tmp / "books.db").exists())


if __name__ == "__main__":
    unittest.main()
