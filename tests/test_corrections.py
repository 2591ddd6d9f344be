import unittest

from data_alchemist.corrections import (
    CorrectionSuggestion,
    apply_suggestions,
    correct_email,
    estimate_duration,
    format_phone,
    generate_suggestions,
    should_apply,
)


def suggestion(confidence, auto_apply=False, row_index=0, value="new"):
    return CorrectionSuggestion(
        category="format_error",
        row_index=row_index,
        column="name",
        current_value="old",
        suggested_value=value,
        confidence=confidence,
        reason="test",
        auto_apply=auto_apply,
    )


class SuggestionTests(unittest.TestCase):
    def test_email_domain_typo(self):
        suggestions = generate_suggestions([{"email": "John@gmial.com"}])
        self.assertEqual(len(suggestions), 1)
        self.assertEqual(suggestions[0].suggested_value, "john@gmail.com")
        self.assertEqual(suggestions[0].confidence, 0.9)
        self.assertTrue(suggestions[0].auto_apply)

    def test_valid_email_is_left_alone(self):
        self.assertEqual(generate_suggestions([{"email": "jane@example.com"}]), [])
        self.assertEqual(correct_email("jane.example.com"), "jane@example.com")

    def test_phone_numbers_with_ten_digits_are_formatted(self):
        suggestions = generate_suggestions([{"phone": "555.123.4567"}, {"phone": "12345"}])
        self.assertEqual([item.suggested_value for item in suggestions], ["(555) 123-4567"])
        self.assertIsNone(format_phone("12345"))

    def test_skills_suggested_from_role(self):
        suggestions = generate_suggestions([{"role": "Developer", "skills": None}, {"role": "Developer", "skills": "go"}])
        self.assertEqual(len(suggestions), 1)
        item = suggestions[0]
        self.assertEqual(item.column, "skills")
        self.assertEqual(item.suggested_value, "javascript, python, java, react, node.js, sql")
        self.assertFalse(item.auto_apply)

    def test_missing_duration_estimated_from_title(self):
        rows = [{"taskname": "Design homepage", "duration": None, "prioritylevel": "5"}]
        suggestions = generate_suggestions(rows)
        self.assertEqual(len(suggestions), 1)
        self.assertEqual(suggestions[0].suggested_value, 5)
        self.assertEqual(suggestions[0].confidence, 0.7)

    def test_duration_estimates(self):
        self.assertEqual(estimate_duration("Code review"), 2)
        self.assertEqual(estimate_duration("Implement API"), 10)
        self.assertEqual(estimate_duration("Something else"), 5)
        self.assertEqual(estimate_duration("Code review", 4), 1)


class ApplyTests(unittest.TestCase):
    def test_confidence_above_threshold_is_applied(self):
        self.assertTrue(should_apply(suggestion(0.85)))
        self.assertFalse(should_apply(suggestion(0.5)))
        self.assertFalse(should_apply(suggestion(0.8)))
        self.assertTrue(should_apply(suggestion(0.5, auto_apply=True)))

    def test_apply_only_touches_accepted_cells(self):
        rows = [{"name": "old", "other": 1}, {"name": "old", "other": 2}]
        updated = apply_suggestions(rows, [suggestion(0.85, row_index=0), suggestion(0.5, row_index=1)])
        self.assertEqual(updated, [{"name": "new", "other": 1}, {"name": "old", "other": 2}])
        self.assertEqual(rows[0]["name"], "old")

    def test_later_suggestion_wins_and_out_of_range_is_ignored(self):
        rows = [{"name": "old"}]
        updated = apply_suggestions(
            rows,
            [suggestion(0.9, value="first"), suggestion(0.9, value="second"), suggestion(0.9, row_index=5)],
        )
        self.assertEqual(updated, [{"name": "second"}])

    def test_custom_threshold(self):
        updated = apply_suggestions([{"name": "old"}], [suggestion(0.6)], threshold=0.5)
        self.assertEqual(updated[0]["name"], "new")


if __name__ == "__main__":
    unittest.main()
