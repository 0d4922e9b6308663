import unittest
from datetime import date

from app.services.adherence import (
    AdherencePolicy, calculate_adherence, calendar_days, current_streak, is_active,
    month_window, parse_day, recent_activity,
)

REF = date(2024, 6, 10)


def med(start="2024-06-01", end="2024-06-30", taken=(), **extra):
    row = {"start_date": start, "end_date": end, "taken_date": list(taken)}
    row.update(extra)
    return row


def june(*days):
    return [f"2024-06-{d:02d}" for d in days]


class AdherenceScenarioTests(unittest.TestCase):

    def test_taken_first_five_of_ten_elapsed_days(self):
        summary = calculate_adherence([med(taken=june(1, 2, 3, 4, 5))], REF)
        self.assertEqual(summary["adherence_rate"], 50)
        self.assertEqual(summary["expected_doses"], 10)
        self.assertEqual(summary["taken_doses"], 5)
        self.assertEqual(summary["missed_doses"], 5)
        self.assertEqual(summary["current_streak"], 0)

    def test_no_active_medications_means_zero_rate(self):
        summary = calculate_adherence([], REF)
        self.assertEqual(summary["adherence_rate"], 0)
        self.assertEqual(summary["missed_doses"], 0)
        self.assertEqual(summary["expected_doses"], 0)

    def test_ended_medication_is_not_active(self):
        ended = med(start="2024-05-01", end="2024-06-05", taken=june(1, 2, 3, 4, 5))
        summary = calculate_adherence([ended], REF)
        self.assertEqual(summary["active_medications"], 0)
        self.assertEqual(summary["expected_doses"], 0)
        self.assertEqual(summary["adherence_rate"], 0)

    def test_open_ended_bounds_are_active(self):
        self.assertTrue(is_active(med(start=None, end=None), REF))
        self.assertTrue(is_active(med(start="2024-01-01", end=""), REF))
        self.assertFalse(is_active(med(start="2024-06-11", end=None), REF))

    def test_expected_scales_with_active_medications(self):
        records = [med(taken=june(10)), med(taken=june(9, 10))]
        summary = calculate_adherence(records, REF)
        self.assertEqual(summary["expected_doses"], 20)
        self.assertEqual(summary["taken_doses"], 3)
        self.assertEqual(summary["adherence_rate"], 15)
        self.assertEqual(summary["expected_doses_month"], 60)

    def test_rate_rounds_half_up(self):
        # 1 of 8 elapsed days = 12.5%
        summary = calculate_adherence([med(taken=june(1))], date(2024, 6, 8))
        self.assertEqual(summary["adherence_rate"], 13)

    def test_future_taken_dates_do_not_count(self):
        summary = calculate_adherence([med(taken=june(10, 11, 12))], REF)
        self.assertEqual(summary["taken_doses"], 1)
        self.assertEqual(summary["missed_doses"], 9)

    def test_malformed_dates_are_skipped(self):
        records = [med(start="not-a-date", end=None, taken=["garbage", None, "2024-06-10"])]
        summary = calculate_adherence(records, REF)
        self.assertEqual(summary["active_medications"], 1)
        self.assertEqual(summary["taken_doses"], 1)
        self.assertTrue(summary["taken_today"])
        self.assertIsNone(parse_day("2024-13-40"))


class OutOfWindowPolicyTests(unittest.TestCase):

    def setUp(self):
        # active from the 5th, but taken on the 3rd and 4th as well
        self.records = [med(start="2024-06-05", taken=june(3, 4, 5, 6))]

    def test_out_of_window_dates_ignored_by_default(self):
        summary = calculate_adherence(self.records, REF)
        self.assertEqual(summary["taken_doses"], 2)

    def test_out_of_window_dates_counted_when_enabled(self):
        policy = AdherencePolicy(count_out_of_window=True)
        summary = calculate_adherence(self.records, REF, policy=policy)
        self.assertEqual(summary["taken_doses"], 4)
        self.assertLessEqual(summary["missed_doses"], summary["expected_doses"])

    def test_policy_from_config(self):
        policy = AdherencePolicy.from_config({"ADHERENCE_COUNT_OUT_OF_WINDOW": True, "STREAK_CAP_DAYS": "7"})
        self.assertTrue(policy.count_out_of_window)
        self.assertEqual(policy.streak_cap_days, 7)

    def test_policy_flag_given_as_string(self):
        self.assertFalse(AdherencePolicy.from_config({"ADHERENCE_COUNT_OUT_OF_WINDOW": "false"}).count_out_of_window)
        self.assertTrue(AdherencePolicy.from_config({"ADHERENCE_COUNT_OUT_OF_WINDOW": "True"}).count_out_of_window)


class StreakTests(unittest.TestCase):

    def test_streak_counts_back_from_today(self):
        self.assertEqual(current_streak([med(taken=june(8, 9, 10))], REF), 3)

    def test_streak_stops_at_first_gap(self):
        self.assertEqual(current_streak([med(taken=june(1, 2, 3, 4, 5, 6, 7, 9, 10))], REF), 2)

    def test_any_medication_counts_for_a_day(self):
        records = [med(taken=june(10)), med(taken=june(9)), med(taken=june(8))]
        self.assertEqual(current_streak(records, REF), 3)

    def test_streak_resets_at_month_start(self):
        records = [med(start="2024-05-01", taken=["2024-05-30", "2024-05-31", "2024-06-01", "2024-06-02"])]
        self.assertEqual(current_streak(records, date(2024, 6, 2)), 2)

    def test_streak_is_capped(self):
        policy = AdherencePolicy(streak_cap_days=3)
        self.assertEqual(current_streak([med(taken=june(*range(1, 11)))], REF, policy=policy), 3)

    def test_missed_never_negative_or_above_expected(self):
        for taken in ([], june(1), june(*range(1, 11)), june(*range(1, 31))):
            summary = calculate_adherence([med(taken=taken), med(taken=taken[:3])], REF)
            self.assertGreaterEqual(summary["missed_doses"], 0)
            self.assertLessEqual(summary["missed_doses"], summary["expected_doses"])


class CalendarAndActivityTests(unittest.TestCase):

    def test_month_window(self):
        self.assertEqual(month_window(date(2024, 2, 10)), (date(2024, 2, 1), date(2024, 2, 29)))

    def test_calendar_statuses(self):
        days = {d["date"]: d for d in calendar_days([med(start="2024-06-03", taken=june(4))], REF)}
        self.assertEqual(len(days), 30)
        self.assertEqual(days["2024-06-01"]["status"], "none")
        self.assertEqual(days["2024-06-03"]["status"], "missed")
        self.assertEqual(days["2024-06-04"]["status"], "taken")
        self.assertEqual(days["2024-06-10"]["status"], "active")
        self.assertTrue(days["2024-06-10"]["is_today"])
        self.assertEqual(days["2024-06-11"]["status"], "active")

    def test_calendar_for_other_month(self):
        days = calendar_days([med()], REF, month=date(2024, 7, 1))
        self.assertEqual(len(days), 31)
        self.assertTrue(all(d["status"] == "none" for d in days))

    def test_recent_activity_orders_by_latest_taken_date(self):
        records = [
            med(id=i, medication_name=f"Med {i}", taken=june(i))
            for i in range(1, 8)
        ] + [med(id=99, medication_name="Never taken")]
        activity = recent_activity(records)
        self.assertEqual(len(activity), 5)
        self.assertEqual([a["medication_id"] for a in activity], [7, 6, 5, 4, 3])

    def test_recent_activity_flags_photo(self):
        activity = recent_activity([med(id=1, taken=june(2), image_url="https://x/y.jpg")])
        self.assertTrue(activity[0]["has_photo"])


if __name__ == "__main__":
    unittest.main()
