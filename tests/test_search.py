import unittest

from data_alchemist.search import Condition, matches_condition, parse_query, search


class QueryParsingTests(unittest.TestCase):
    def test_duration_and_phase_conditions(self):
        conditions = parse_query("Tasks with duration more than 3 in phase 2")
        self.assertEqual(
            conditions,
            [Condition("duration", ">", 3), Condition("preferredphases", "includes", 2)],
        )

    def test_exact_priority_only_without_comparison(self):
        self.assertEqual(parse_query("priority level 5"), [Condition("prioritylevel", "=", 5)])
        self.assertEqual(parse_query("priority greater than 3"), [Condition("prioritylevel", ">", 3)])

    def test_skills_split_into_separate_conditions(self):
        conditions = parse_query("workers with skills python, sql")
        self.assertIn(Condition("requiredskills", "includes", "python"), conditions)
        self.assertIn(Condition("requiredskills", "includes", "sql"), conditions)

    def test_group_keywords(self):
        self.assertIn(Condition("grouptag", "=", "enterprise"), parse_query("enterprise clients"))


class SearchTests(unittest.TestCase):
    def test_duration_more_than_reads_numeric_strings(self):
        rows = [{"duration": 3}, {"duration": 7}, {"duration": "10"}]
        result = search(rows, "duration more than 5")
        self.assertEqual(result.row_indices, [1, 2])
        self.assertEqual(result.rows, [{"duration": 7}, {"duration": "10"}])
        self.assertEqual(result.explanation, "Found 2 rows matching: duration more than 5")

    def test_equality_is_type_strict(self):
        rows = [{"prioritylevel": 5}, {"prioritylevel": "5"}]
        self.assertEqual(search(rows, "priority 5").row_indices, [0])

    def test_phase_membership_in_lists_and_json(self):
        rows = [{"preferredphases": [1, 2]}, {"preferredphases": "[3,4]"}, {"preferredphases": "[2]"}]
        self.assertEqual(search(rows, "phase 2").row_indices, [0, 2])

    def test_query_without_conditions_matches_everything(self):
        rows = [{"a": 1}, {"a": 2}]
        result = search(rows, "show me everything")
        self.assertEqual(result.row_indices, [0, 1])
        self.assertEqual(result.conditions, [])

    def test_conditions_are_conjunctive(self):
        rows = [
            {"duration": 4, "preferredphases": [1]},
            {"duration": 4, "preferredphases": [2]},
            {"duration": 1, "preferredphases": [2]},
        ]
        self.assertEqual(search(rows, "duration more than 3 in phase 2").row_indices, [1])

    def test_includes_on_plain_text_is_substring(self):
        self.assertTrue(matches_condition("Python, SQL", Condition("requiredskills", "includes", "python")))
        self.assertFalse(matches_condition(None, Condition("requiredskills", "includes", "python")))

    def test_result_serializes(self):
        payload = search([{"duration": 9}], "duration > 5").to_dict()
        self.assertEqual(payload["row_indices"], [0])
        self.assertEqual(payload["conditions"], [{"column": "duration", "operator": ">", "value": 5}])


if __name__ == "__main__":
    unittest.main()
