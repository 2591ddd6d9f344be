import unittest

from data_alchemist.cross_entity import CrossEntityData
from data_alchemist.rules import (
    RULE_TYPES,
    BusinessRule,
    create_co_run_rule,
    create_load_limit_rule,
    create_pattern_match_rule,
    create_phase_window_rule,
    create_precedence_override_rule,
    create_slot_restriction_rule,
    generate_rules_config,
    recommend_rules,
    rules_from_config,
    validate_rule,
    with_enabled,
    with_priority,
)

TASKS = [{"taskid": "T1", "taskname": "Alpha"}, {"taskid": "T2", "taskname": "Beta"}, {"taskid": "T3", "taskname": "Gamma"}]
WORKERS = [
    {"workerid": "W1", "skills": "python,sql", "availableslots": "[1]", "maxloadperphase": "3", "workergroup": "GroupA"},
    {"workerid": "W2", "skills": "design", "availableslots": "[1,2,3,4,5]", "maxloadperphase": "1", "workergroup": "GroupB"},
]
CLIENTS = [
    {"clientid": "C1", "requestedtaskids": "T1,T2", "grouptag": "Enterprise"},
    {"clientid": "C2", "requestedtaskids": "T2, T1", "grouptag": "Startup"},
    {"clientid": "C3", "requestedtaskids": "T3", "grouptag": "Startup"},
]
DATA = CrossEntityData(clients=CLIENTS, workers=WORKERS, tasks=TASKS)


class RuleFactoryTests(unittest.TestCase):
    def test_type_follows_parameters(self):
        rules = [
            create_co_run_rule(["T1", "T2"]),
            create_slot_restriction_rule("client", "Enterprise", 2),
            create_load_limit_rule("GroupA", 2),
            create_phase_window_rule("T1", [1, 2]),
            create_pattern_match_rule(".*python.*", "skill-requirement"),
            create_precedence_override_rule([], [], ["r1"]),
        ]
        self.assertEqual(tuple(rule.type for rule in rules), RULE_TYPES)
        self.assertEqual(len({rule.id for rule in rules}), len(rules))

    def test_descriptions_and_default_names(self):
        rule = create_co_run_rule(["T1", "T2"])
        self.assertEqual(rule.description, "Tasks T1, T2 must run together")
        self.assertTrue(rule.name.startswith("Co-run Rule "))
        self.assertTrue(rule.enabled)
        self.assertEqual(rule.priority, 1)
        self.assertEqual(create_load_limit_rule("GroupA", 2, "Cap A").name, "Cap A")

    def test_slot_restriction_group_type_must_be_known(self):
        with self.assertRaises(ValueError):
            create_slot_restriction_rule("vendor", "X", 1)

    def test_priority_bounds(self):
        rule = create_co_run_rule(["T1", "T2"])
        self.assertEqual(with_priority(rule, 5).priority, 5)
        with self.assertRaises(ValueError):
            with_priority(rule, 6)
        self.assertFalse(with_enabled(rule, False).enabled)
        self.assertTrue(rule.enabled)


class RuleCheckTests(unittest.TestCase):
    def test_co_run_checks(self):
        check = validate_rule(create_co_run_rule(["T1"]), DATA)
        self.assertFalse(check.is_valid)
        self.assertIn("Co-run rule must specify at least 2 tasks", check.errors)

        check = validate_rule(create_co_run_rule(["T1", "T9", "T1"]), DATA)
        self.assertIn("Tasks not found: T9", check.errors)
        self.assertIn("Duplicate tasks in co-run rule: T1", check.errors)

        self.assertTrue(validate_rule(create_co_run_rule(["T1", "T2"]), DATA).is_valid)

    def test_unknown_groups_are_warnings_only(self):
        check = validate_rule(create_slot_restriction_rule("worker", "GroupZ", 1), DATA)
        self.assertTrue(check.is_valid)
        self.assertEqual(check.warnings, ['Worker group "GroupZ" not found in data'])

        check = validate_rule(create_load_limit_rule("GroupA", 0), DATA)
        self.assertEqual(check.errors, ["Maximum slots per phase must be at least 1"])
        self.assertEqual(check.warnings, [])

    def test_phase_window_checks(self):
        check = validate_rule(create_phase_window_rule("T9", [0]), DATA)
        self.assertIn('Task "T9" not found', check.errors)
        self.assertIn("All phases must be positive numbers", check.errors)

    def test_pattern_match_checks(self):
        check = validate_rule(create_pattern_match_rule("(", "unknown-template"), DATA)
        self.assertEqual(check.errors, ["Invalid regular expression", "Invalid rule template"])

    def test_precedence_needs_order(self):
        check = validate_rule(create_precedence_override_rule([], [], []))
        self.assertEqual(check.errors, ["Priority order must be specified"])


class RulesConfigTests(unittest.TestCase):
    def test_config_keeps_enabled_rules_highest_priority_first(self):
        low = create_co_run_rule(["T1", "T2"], "low")
        high = with_priority(create_load_limit_rule("GroupA", 2, "high"), 4)
        tie = create_phase_window_rule("T1", [1], "tie")
        disabled = with_enabled(create_co_run_rule(["T2", "T3"], "off"), False)
        config = generate_rules_config([low, disabled, high, tie], generated_at="2026-01-01T00:00:00Z")
        self.assertEqual(config["version"], "1.0")
        self.assertEqual(config["generatedAt"], "2026-01-01T00:00:00Z")
        self.assertEqual([rule["name"] for rule in config["rules"]], ["high", "low", "tie"])
        self.assertEqual(
            config["rules"][0]["parameters"],
            {"workerGroup": "GroupA", "maxSlotsPerPhase": 2, "description": "Worker group GroupA limited to 2 slots per phase"},
        )

    def test_config_round_trip(self):
        original = [create_slot_restriction_rule("client", "Enterprise", 2, "slots"), create_phase_window_rule("T1", [1, 2], "window")]
        rebuilt = rules_from_config(generate_rules_config(original))
        self.assertEqual([rule.parameters for rule in rebuilt], [rule.parameters for rule in original])
        self.assertTrue(all(isinstance(rule, BusinessRule) for rule in rebuilt))

    def test_unknown_rule_type_in_config(self):
        with self.assertRaisesRegex(ValueError, "Unknown rule type"):
            rules_from_config({"rules": [{"type": "teleport", "parameters": {}}]})
        with self.assertRaises(ValueError):
            rules_from_config({"rules": "nope"})


class RecommendationTests(unittest.TestCase):
    def test_shared_task_combinations_suggest_co_run(self):
        recommendations = [item for item in recommend_rules(DATA) if item.type == "coRun"]
        self.assertEqual(len(recommendations), 1)
        self.assertEqual(recommendations[0].evidence, {"clients": ["C1", "C2"], "tasks": ["T1", "T2"], "frequency": 2})
        self.assertEqual(recommendations[0].confidence, 0.8)

    def test_overloaded_group_suggests_load_limit(self):
        recommendations = [item for item in recommend_rules(DATA) if item.type == "loadLimit"]
        self.assertEqual(len(recommendations), 1)
        self.assertEqual(recommendations[0].evidence["group"], "GroupA")
        self.assertEqual(recommendations[0].suggested_rule.parameters.max_slots_per_phase, 1)

    def test_skill_gap_suggests_pattern_rule(self):
        data = CrossEntityData(workers=WORKERS, tasks=[{"taskid": "T1", "requiredskills": "python,c++"}])
        recommendations = [item for item in recommend_rules(data) if item.type == "patternMatch"]
        self.assertEqual(len(recommendations), 1)
        self.assertEqual(recommendations[0].evidence["missing_skills"], ["c++"])
        self.assertEqual(recommendations[0].suggested_rule.parameters.regex, r".*(c\+\+).*")

    def test_no_recommendations_without_companions(self):
        self.assertEqual(recommend_rules(CrossEntityData(clients=CLIENTS)), [])


if __name__ == "__main__":
    unittest.main()
