import unittest

from data_alchemist.schemas import canonical_fields, detect_entity, entity_scores, map_headers, normalize_rows, original_headers
from data_alchemist.shared import (
    find_column,
    is_blank,
    parse_comma_separated,
    parse_int,
    parse_json,
    parse_phase_range,
)


class PhaseRangeTests(unittest.TestCase):
    def test_dash_range_is_inclusive(self):
        self.assertEqual(parse_phase_range("1-3"), [1, 2, 3])

    def test_comma_list(self):
        self.assertEqual(parse_phase_range("2,4"), [2, 4])

    def test_unparseable_text_yields_empty_list(self):
        self.assertEqual(parse_phase_range("abc"), [])

    def test_json_array_and_mixed_forms(self):
        self.assertEqual(parse_phase_range("[1,3]"), [1, 3])
        self.assertEqual(parse_phase_range("1-2,5"), [1, 2, 5])
        self.assertEqual(parse_phase_range([2, 3]), [2, 3])

    def test_reversed_range_and_blank_are_dropped(self):
        self.assertEqual(parse_phase_range("3-1"), [])
        self.assertEqual(parse_phase_range(None), [])
        self.assertEqual(parse_phase_range(""), [])


class CellParsingTests(unittest.TestCase):
    def test_parse_int_reads_leading_integer(self):
        self.assertEqual(parse_int("10"), 10)
        self.assertEqual(parse_int(" 7 days"), 7)
        self.assertEqual(parse_int("3.9"), 3)
        self.assertEqual(parse_int(4.5), 4.5)
        self.assertIsNone(parse_int("abc"))
        self.assertIsNone(parse_int(True))

    def test_comma_separated_trims_and_drops_empties(self):
        self.assertEqual(parse_comma_separated(" T1, T2 ,,T3 "), ["T1", "T2", "T3"])
        self.assertEqual(parse_comma_separated(None), [])
        self.assertEqual(parse_comma_separated(["a", " b "]), ["a", "b"])

    def test_parse_json_returns_none_on_invalid(self):
        self.assertEqual(parse_json('{"a": 1}'), {"a": 1})
        self.assertIsNone(parse_json("not json"))
        self.assertIsNone(parse_json(None))

    def test_blank_cells(self):
        self.assertTrue(is_blank(None))
        self.assertTrue(is_blank(""))
        self.assertTrue(is_blank(float("nan")))
        self.assertFalse(is_blank(0))

    def test_find_column_tries_patterns_in_order(self):
        rows = [{"ClientName": "Acme", "ClientID": "C1"}]
        self.assertEqual(find_column(rows, ("clientid", "id")), "ClientID")
        self.assertIsNone(find_column(rows, ("duration",)))
        self.assertIsNone(find_column([], ("id",)))


class SchemaTests(unittest.TestCase):
    def test_aliases_map_to_canonical_fields(self):
        header_map = map_headers(["Client ID", "client_name", "Priority", "Notes"], "client")
        self.assertEqual(
            header_map,
            {
                "Client ID": "clientid",
                "client_name": "clientname",
                "Priority": "prioritylevel",
                "Notes": "Notes",
            },
        )

    def test_normalize_rows_renames_keys_and_keeps_values(self):
        rows, header_map = normalize_rows([{"Task ID": "T1", "Duration": "3"}], "task")
        self.assertEqual(rows, [{"taskid": "T1", "duration": "3"}])
        self.assertEqual(header_map["Task ID"], "taskid")

    def test_original_headers_invert_the_map(self):
        _, header_map = normalize_rows([{"Task ID": "T1", "Duration": "3", "Notes": "x"}], "task")
        self.assertEqual(original_headers(header_map), {"taskid": "Task ID", "duration": "Duration", "Notes": "Notes"})

    def test_detect_entity_from_headers(self):
        self.assertEqual(
            detect_entity(["ClientID", "ClientName", "PriorityLevel", "RequestedTaskIDs", "GroupTag", "AttributesJSON"]),
            "client",
        )
        self.assertEqual(
            detect_entity(["WorkerID", "WorkerName", "Skills", "AvailableSlots", "MaxLoadPerPhase"]),
            "worker",
        )
        self.assertEqual(
            detect_entity(["TaskID", "TaskName", "Duration", "RequiredSkills", "PreferredPhases", "MaxConcurrent"]),
            "task",
        )

    def test_detect_entity_gives_up_without_signal(self):
        self.assertIsNone(detect_entity(["foo", "bar"]))
        self.assertEqual(entity_scores(["foo"]), {"client": 0, "worker": 0, "task": 0})

    def test_unknown_entity_is_rejected(self):
        with self.assertRaisesRegex(ValueError, "Unknown entity type"):
            canonical_fields("vendor")


if __name__ == "__main__":
    unittest.main()
