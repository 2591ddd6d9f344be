import json
import tempfile
import unittest
from pathlib import Path

from data_alchemist.config import DEFAULT_SETTINGS, Settings, load_settings, settings_from_dict, starter_config
from data_alchemist.contracts import CONTRACT_VERSIONS, build_payload, build_run_summary
from data_alchemist.taxonomy import explain_rule, rule_ids

VALIDATION_RULE_IDS = {
    "required_columns",
    "duplicate_ids",
    "priority_range",
    "requested_tasks_format",
    "attributes_json",
    "skills_format",
    "available_slots_format",
    "max_load_range",
    "qualification_level",
    "duration_range",
    "required_skills_format",
    "preferred_phases_format",
    "max_concurrent_range",
    "category_format",
    "client_task_references",
    "task_worker_skill_coverage",
    "phase_slot_saturation",
    "max_concurrency_feasibility",
}


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        self.assertIs(load_settings(None), DEFAULT_SETTINGS)
        self.assertEqual(DEFAULT_SETTINGS.apply_confidence_threshold, 0.8)
        self.assertEqual(DEFAULT_SETTINGS.consistency_threshold, 0.1)
        self.assertEqual(starter_config()["output_dir"], "data-alchemist-output")

    def test_partial_config_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "data-alchemist.json"
            path.write_text(json.dumps({"saturation_factor": 3, "output_dir": "out"}), encoding="utf-8")
            settings = load_settings(path)
        self.assertEqual(settings, Settings(saturation_factor=3.0, output_dir="out"))

    def test_bad_values(self):
        with self.assertRaisesRegex(ValueError, "Unknown config keys: colour"):
            settings_from_dict({"colour": "blue"})
        with self.assertRaisesRegex(ValueError, "must be a number"):
            settings_from_dict({"weight_tolerance": True})
        with self.assertRaisesRegex(ValueError, "must not be negative"):
            settings_from_dict({"weight_tolerance": -1})
        with self.assertRaises(ValueError):
            settings_from_dict({"output_dir": "  "})

    def test_bad_files(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yaml_path = Path(tmpdir) / "config.yaml"
            yaml_path.write_text("a: 1", encoding="utf-8")
            with self.assertRaisesRegex(ValueError, ".json"):
                load_settings(yaml_path)
            list_path = Path(tmpdir) / "config.json"
            list_path.write_text("[]", encoding="utf-8")
            with self.assertRaisesRegex(ValueError, "JSON object"):
                load_settings(list_path)
        with self.assertRaises(FileNotFoundError):
            load_settings("/no/such/config.json")


class ContractTests(unittest.TestCase):
    def test_payload_envelope(self):
        summary = build_run_summary(command="validate", input_path=Path("clients.csv"), warnings=["w"])
        payload = build_payload("data_alchemist.validate", {"issues": []}, summary)
        self.assertEqual(payload["contract"], {"name": "data_alchemist.validate", "version": "1.0.0"})
        self.assertEqual(payload["issues"], [])
        self.assertEqual(payload["run_summary"]["tool"], "data-alchemist")
        self.assertEqual(payload["run_summary"]["input_file"], "clients.csv")
        self.assertEqual(payload["run_summary"]["warnings_count"], 1)
        self.assertTrue(payload["run_summary"]["generated_at"].endswith("Z"))

    def test_every_command_has_a_contract(self):
        for command in ("detect", "validate", "correct", "search", "parse_rule", "recommend", "weights", "export"):
            self.assertIn(f"data_alchemist.{command}", CONTRACT_VERSIONS)


class TaxonomyTests(unittest.TestCase):
    def test_catalogue_covers_every_validation_rule(self):
        self.assertEqual(set(rule_ids()), VALIDATION_RULE_IDS)

    def test_explain_rule(self):
        entry = explain_rule(" Duplicate_IDs ")
        self.assertEqual(entry["rule"], "duplicate_ids")
        self.assertEqual(entry["kind"], "error")
        self.assertEqual(explain_rule("task_worker_skill_coverage")["needs"], "workers")
        self.assertIsNone(explain_rule("made_up"))


if __name__ == "__main__":
    unittest.main()
