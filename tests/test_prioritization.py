import unittest

from data_alchemist.config import Settings
from data_alchemist.cross_entity import CrossEntityData
from data_alchemist.prioritization import (
    PRESET_WEIGHTS,
    Criterion,
    PairwiseComparison,
    analyze_pairwise,
    build_pairwise_matrix,
    build_prioritization_export,
    client_priority_score,
    comparisons_from_payload,
    consistency_ratio,
    default_criteria,
    excel_rows,
    generate_pairwise_comparisons,
    get_profile,
    normalize_weights,
    preset_profiles,
    random_index,
    task_complexity_score,
    validate_prioritization,
    weights_from_pairwise,
    weights_from_ranking,
    with_weights,
    worker_capacity_score,
)

IDS = ["a", "b", "c"]


class WeightTests(unittest.TestCase):
    def test_normalized_weights_sum_to_one(self):
        for raw in ([1, 2, 3], [0.3, 0.25, 0.2, 0.15], [5]):
            self.assertAlmostEqual(sum(normalize_weights(raw)), 1.0)
        self.assertEqual(normalize_weights([0, 0]), [0.5, 0.5])
        self.assertEqual(normalize_weights([]), [])

    def test_ranking_weights(self):
        weights = weights_from_ranking(["a", "b", "c"])
        self.assertAlmostEqual(weights["a"], 3 / 6)
        self.assertAlmostEqual(weights["b"], 2 / 6)
        self.assertAlmostEqual(weights["c"], 1 / 6)

    def test_presets_are_normalized(self):
        self.assertEqual({profile.id for profile in preset_profiles()}, set(PRESET_WEIGHTS))
        for profile in preset_profiles():
            self.assertAlmostEqual(sum(criterion.weight for criterion in profile.criteria), 1.0)
        balanced = get_profile("balanced")
        self.assertTrue(all(abs(criterion.weight - 0.125) < 1e-9 for criterion in balanced.criteria))
        with self.assertRaises(ValueError):
            get_profile("nope")


class PairwiseTests(unittest.TestCase):
    def test_all_ones_matrix_gives_uniform_weights_and_zero_ratio(self):
        matrix = build_pairwise_matrix(IDS, generate_pairwise_comparisons(IDS))
        self.assertEqual(matrix, [[1.0, 1.0, 1.0]] * 3)
        weights = weights_from_pairwise(matrix)
        for weight in weights:
            self.assertAlmostEqual(weight, 1 / 3)
        self.assertEqual(consistency_ratio(matrix), 0.0)

    def test_reciprocal_entry_is_exact(self):
        for value in (3, 5, 7, 2.5):
            matrix = build_pairwise_matrix(IDS, [PairwiseComparison("a", "c", value)])
            self.assertEqual(matrix[0][2], value)
            self.assertEqual(matrix[2][0], 1 / value)
            self.assertEqual(matrix[1][1], 1.0)

    def test_unknown_ids_are_ignored_and_non_positive_values_rejected(self):
        matrix = build_pairwise_matrix(IDS, [PairwiseComparison("a", "z", 5)])
        self.assertEqual(matrix, [[1.0, 1.0, 1.0]] * 3)
        with self.assertRaises(ValueError):
            build_pairwise_matrix(IDS, [PairwiseComparison("a", "b", 0)])

    def test_stronger_criterion_gets_larger_weight(self):
        result = analyze_pairwise(IDS, [PairwiseComparison("a", "b", 3), PairwiseComparison("a", "c", 5), PairwiseComparison("b", "c", 2)])
        weights = result.weight_map()
        self.assertGreater(weights["a"], weights["b"])
        self.assertGreater(weights["b"], weights["c"])
        self.assertAlmostEqual(sum(result.weights), 1.0)
        self.assertTrue(result.is_consistent)

    def test_inconsistent_judgements_are_flagged(self):
        comparisons = [PairwiseComparison("a", "b", 9), PairwiseComparison("b", "c", 9), PairwiseComparison("c", "a", 9)]
        result = analyze_pairwise(IDS, comparisons)
        self.assertGreaterEqual(result.consistency_ratio, 0.1)
        self.assertFalse(result.is_consistent)

    def test_small_matrices_are_always_consistent(self):
        matrix = build_pairwise_matrix(["a", "b"], [PairwiseComparison("a", "b", 9)])
        self.assertEqual(consistency_ratio(matrix), 0.0)
        self.assertEqual(random_index(3), 0.58)
        self.assertEqual(random_index(15), 1.49)

    def test_comparisons_from_payload(self):
        comparisons = comparisons_from_payload({"comparisons": [{"criterion1": "a", "criterion2": "b", "value": 3}]})
        self.assertEqual(comparisons, [PairwiseComparison("a", "b", 3)])
        with self.assertRaises(ValueError):
            comparisons_from_payload([{"criterion1": "a", "value": 3}])
        with self.assertRaises(ValueError):
            comparisons_from_payload([{"criterion1": "a", "criterion2": "b", "value": "high"}])


class ValidationTests(unittest.TestCase):
    def test_default_criteria_do_not_sum_to_one(self):
        check = validate_prioritization(default_criteria())
        self.assertFalse(check.is_valid)
        self.assertEqual(check.errors, ["Weights must sum to 1.0 (current sum: 1.350)"])

    def test_negative_weight_is_rejected(self):
        criteria = [Criterion("a", "A", "", "client", 1.2), Criterion("b", "B", "", "client", -0.2)]
        check = validate_prioritization(criteria)
        self.assertEqual(check.errors, ["All weights must be non-negative"])

    def test_consistency_threshold_from_settings(self):
        criteria = [Criterion(item, item, "", "constraint", 1 / 3) for item in IDS]
        comparisons = [PairwiseComparison("a", "b", 9), PairwiseComparison("b", "c", 9), PairwiseComparison("c", "a", 9)]
        self.assertFalse(validate_prioritization(criteria, comparisons).is_valid)
        lenient = Settings(consistency_threshold=100.0)
        self.assertTrue(validate_prioritization(criteria, comparisons, lenient).is_valid)


class ScoringTests(unittest.TestCase):
    def setUp(self):
        self.criteria = with_weights(default_criteria(), {})

    def test_client_score(self):
        score = client_priority_score({"prioritylevel": "5", "requestedtaskids": "T1,T2"}, self.criteria)
        self.assertAlmostEqual(score, 0.3 * 1 + 0.25 * 0.4)

    def test_worker_score(self):
        worker = {"availableslots": "[1,2]", "maxloadperphase": "1", "skills": "a,b,c,d,e,f"}
        self.assertAlmostEqual(worker_capacity_score(worker, self.criteria), 0.2 * 1 + 0.1 * 1)

    def test_task_score(self):
        task = {"requiredskills": "a", "preferredphases": "1-5", "duration": "5"}
        self.assertAlmostEqual(task_complexity_score(task, self.criteria), 0.15 / 3 + 0.1 * 1 + 0.15 * 0.5)

    def test_export_and_sheets(self):
        profile = get_profile("balanced")
        data = CrossEntityData(
            clients=[{"clientid": "C1", "clientname": "Acme", "prioritylevel": "5", "requestedtaskids": None}],
            tasks=[{"taskid": "T1", "duration": "10"}],
        )
        export = build_prioritization_export(profile, data, rules=[{"id": "r1"}])
        self.assertEqual(export["workers"], [])
        self.assertEqual(export["rules"], [{"id": "r1"}])
        self.assertAlmostEqual(export["clients"][0]["CalculatedPriority"], 0.125)
        self.assertEqual(export["prioritization"]["consistencyRatio"], 0.0)
        self.assertAlmostEqual(export["prioritization"]["metadata"]["totalWeight"], 1.0)

        sheets = excel_rows(export)
        self.assertEqual(sheets["clients"][0]["CalculatedPriority"], "0.125")
        self.assertIsNone(sheets["clients"][0]["RequestedTaskIDs"])
        self.assertEqual(sheets["tasks"][0]["CalculatedComplexity"], "0.125")
        self.assertEqual(sheets["prioritization"]["Profile"], "Balanced Approach")
        self.assertEqual(len(sheets["prioritization"]["Criteria"]), 8)


if __name__ == "__main__":
    unittest.main()
