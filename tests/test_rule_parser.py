import unittest

from data_alchemist.cross_entity import CrossEntityData
from data_alchemist.rule_parser import (
    contextual_suggestions,
    detect_entity_mentions,
    extract_phases,
    extract_task_ids,
    parse_rule,
    to_business_rule,
)

TASKS = [{"taskid": "T1", "taskname": "Alpha"}, {"taskid": "T2", "taskname": "Beta"}]
WORKERS = [{"workerid": "W1", "skills": "python,sql", "workergroup": "GroupA"}]
CLIENTS = [{"clientid": "C1", "grouptag": "Enterprise"}]
DATA = CrossEntityData(clients=CLIENTS, workers=WORKERS, tasks=TASKS)


class ExtractionTests(unittest.TestCase):
    def test_phase_forms(self):
        self.assertEqual(extract_phases("phases 2 to 4"), [2, 3, 4])
        self.assertEqual(extract_phases("1-3"), [1, 2, 3])
        self.assertEqual(extract_phases("phase 1, 3"), [1, 3])
        self.assertEqual(extract_phases("never"), [])

    def test_task_ids_by_id_name_and_shape(self):
        self.assertEqual(extract_task_ids("t1 and beta", DATA), ["T1", "T2"])
        self.assertEqual(extract_task_ids("t1, t7 and t1", DATA), ["T1", "T7"])
        self.assertEqual(extract_task_ids("and the", DATA), [])


class ParseRuleTests(unittest.TestCase):
    def test_co_run_with_known_tasks(self):
        parsed = parse_rule("Tasks T1 and T2 must run together", DATA)
        self.assertEqual(parsed.rule_type, "coRun")
        self.assertTrue(parsed.can_apply)
        self.assertEqual(parsed.parameters["tasks"], ["T1", "T2"])
        self.assertAlmostEqual(parsed.confidence, 0.7)

    def test_co_run_with_missing_task_cannot_apply(self):
        parsed = parse_rule("Tasks T1 and T2 must run together", CrossEntityData(tasks=TASKS[:1]))
        self.assertEqual(parsed.rule_type, "coRun")
        self.assertFalse(parsed.can_apply)
        self.assertEqual(parsed.reason, "Tasks not found: T2")

    def test_slot_restriction(self):
        parsed = parse_rule("Client group Enterprise must have at least 2 common slots", DATA)
        self.assertEqual(parsed.rule_type, "slotRestriction")
        self.assertEqual(parsed.parameters, {"group_type": "client", "group_name": "Enterprise", "min_common_slots": 2})
        self.assertTrue(parsed.can_apply)

    def test_load_limit(self):
        parsed = parse_rule("Worker group GroupA limited to 3 slots per phase", DATA)
        self.assertEqual(parsed.rule_type, "loadLimit")
        self.assertEqual(parsed.parameters, {"worker_group": "GroupA", "max_slots_per_phase": 3})

    def test_phase_window(self):
        parsed = parse_rule("Task T1 must run in phases 1-3", DATA)
        self.assertEqual(parsed.rule_type, "phaseWindow")
        self.assertEqual(parsed.parameters, {"task_id": "T1", "allowed_phases": [1, 2, 3]})
        self.assertTrue(parsed.can_apply)

    def test_phase_window_for_unknown_task(self):
        parsed = parse_rule("Task T9 must run in phase 2", DATA)
        self.assertEqual(parsed.rule_type, "phaseWindow")
        self.assertFalse(parsed.can_apply)
        self.assertEqual(parsed.reason, 'Task "T9" not found')

    def test_precedence_override_is_never_applicable(self):
        parsed = parse_rule("Precedence order global then specific")
        self.assertEqual(parsed.rule_type, "precedenceOverride")
        self.assertFalse(parsed.can_apply)

    def test_unmatched_text(self):
        self.assertIsNone(parse_rule("hello world", DATA))


class ConversionTests(unittest.TestCase):
    def test_parsed_rule_becomes_business_rule(self):
        rule = to_business_rule(parse_rule("Tasks T1 and T2 must run together", DATA))
        self.assertEqual(rule.type, "coRun")
        self.assertEqual(rule.name, "Co-run T1, T2")
        self.assertEqual(rule.parameters.tasks, ("T1", "T2"))

    def test_inapplicable_rule_is_rejected(self):
        parsed = parse_rule("Task T9 must run in phase 2", DATA)
        with self.assertRaises(ValueError):
            to_business_rule(parsed)


class HintTests(unittest.TestCase):
    def test_entity_mentions(self):
        self.assertEqual(detect_entity_mentions("Client tasks for each worker"), ["client", "worker", "task"])

    def test_contextual_suggestions_list_known_values(self):
        hints = contextual_suggestions("which task group needs a skill", DATA)
        self.assertIn("Available tasks: Alpha, Beta", hints)
        self.assertIn("Client groups: Enterprise", hints)
        self.assertIn("Worker groups: GroupA", hints)
        self.assertIn("Available skills: python, sql", hints)


if __name__ == "__main__":
    unittest.main()
