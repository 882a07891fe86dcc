import tempfile
import unittest
import zipfile
from pathlib import Path

import pandas as pd

from activity_report.pipeline import (
    SchemaError,
    ensure_data,
    interval_label,
    interval_to_minutes,
    is_valid_interval,
    load_activity,
    minutes_to_interval,
    prepare_observations,
)
from tests.helpers import example_frame, synthetic_frame


class IntervalCodeTests(unittest.TestCase):
    def test_decode(self):
        self.assertEqual(interval_to_minutes(0), 0)
        self.assertEqual(interval_to_minutes(55), 55)
        self.assertEqual(interval_to_minutes(100), 60)
        self.assertEqual(interval_to_minutes(835), 515)
        self.assertEqual(interval_to_minutes(2355), 1435)

    def test_encode(self):
        self.assertEqual(minutes_to_interval(515), 835)
        self.assertEqual(minutes_to_interval(60), 100)

    def test_label(self):
        self.assertEqual(interval_label(5), "00:05")
        self.assertEqual(interval_label(835), "08:35")

    def test_validity(self):
        for code in (0, 5, 55, 100, 1230, 2355):
            self.assertTrue(is_valid_interval(code), code)
        for code in (3, 60, 95, 2400, 2360):
            self.assertFalse(is_valid_interval(code), code)


class PrepareObservationsTests(unittest.TestCase):
    def test_types_and_derived_columns(self):
        df = prepare_observations(example_frame())
        self.assertEqual(str(df["steps"].dtype), "Int64")
        self.assertTrue(pd.isna(df.loc[0, "steps"]))
        self.assertEqual(df.loc[1, "steps"], 10)
        self.assertEqual(list(df["interval"]), [0, 5, 0])
        self.assertEqual(list(df["weekday"].astype(str)), ["Monday", "Monday", "Tuesday"])
        self.assertEqual(list(df["minute_of_day"]), [0, 5, 0])

    def test_weekend_flag(self):
        raw = pd.DataFrame(
            {
                "steps": ["1", "2", "3"],
                "date": ["2012-10-06", "2012-10-07", "2012-10-01"],
                "interval": ["0", "0", "0"],
            }
        )
        df = prepare_observations(raw)
        self.assertEqual(list(df["weekday"].astype(str)), ["Saturday", "Sunday", "Monday"])
        self.assertEqual(list(df["is_weekend"]), [True, True, False])
        self.assertEqual(list(df["day_type"]), ["weekend", "weekend", "weekday"])

    def test_na_token_is_missing(self):
        raw = example_frame()
        raw.loc[0, "steps"] = "NA"
        df = prepare_observations(raw)
        self.assertEqual(int(df["steps"].isna().sum()), 1)

    def test_input_not_modified(self):
        raw = example_frame()
        before = raw.copy()
        prepare_observations(raw)
        pd.testing.assert_frame_equal(raw, before)

    def test_wrong_columns(self):
        raw = example_frame().rename(columns={"interval": "slot"})
        with self.assertRaises(SchemaError):
            prepare_observations(raw)

    def test_extra_column(self):
        raw = example_frame()
        raw["note"] = "x"
        with self.assertRaises(SchemaError):
            prepare_observations(raw)

    def test_bad_date(self):
        raw = example_frame()
        raw.loc[2, "date"] = "2012-13-01"
        with self.assertRaises(SchemaError):
            prepare_observations(raw)

    def test_bad_interval_token(self):
        raw = example_frame()
        raw.loc[1, "interval"] = "abc"
        with self.assertRaises(SchemaError):
            prepare_observations(raw)

    def test_interval_out_of_range(self):
        raw = example_frame()
        raw.loc[1, "interval"] = "60"
        with self.assertRaises(SchemaError):
            prepare_observations(raw)

    def test_negative_steps(self):
        raw = example_frame()
        raw.loc[1, "steps"] = "-3"
        with self.assertRaises(SchemaError):
            prepare_observations(raw)

    def test_duplicate_rows(self):
        raw = example_frame()
        raw.loc[2, "date"] = "2012-10-01"
        with self.assertRaises(SchemaError):
            prepare_observations(raw)


class LoadActivityTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def write_csv(self, frame, name="activity.csv"):
        path = self.tmp / name
        frame.to_csv(path, index=False)
        return path

    def test_load_csv(self):
        raw = synthetic_frame(days=2)
        raw.loc[raw["steps"] == "", "steps"] = "NA"
        path = self.write_csv(raw)
        df = load_activity(path)
        self.assertEqual(len(df), 2 * 288)
        self.assertEqual(df["date"].nunique(), 2)
        self.assertGreater(int(df["steps"].isna().sum()), 0)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_activity(self.tmp / "nope.csv")

    def test_ensure_data_extracts_archive(self):
        src = self.write_csv(example_frame(), name="staging.csv")
        archive = self.tmp / "activity.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.write(src, arcname="activity.csv")
        target = self.tmp / "data" / "activity.csv"

        path = ensure_data(target, archive)
        self.assertEqual(path, target)
        self.assertTrue(target.exists())
        self.assertEqual(len(load_activity(path)), 3)

    def test_ensure_data_prefers_flat_file(self):
        path = self.write_csv(example_frame())
        self.assertEqual(ensure_data(path, self.tmp / "missing.zip"), path)

    def test_ensure_data_nothing_there(self):
        with self.assertRaises(FileNotFoundError):
            ensure_data(self.tmp / "activity.csv", self.tmp / "activity.zip")


if __name__ == "__main__":
    unittest.main()
