"""
旅程通知のスケジュールと取得を検証するテスト。
Tests for itinerary notification scheduling and polling.
"""
import datetime
import unittest
from zoneinfo import ZoneInfo

from tests.base import DatabaseTestCase

from rwanda_planner import notifications, redis_client

KIGALI = ZoneInfo("Africa/Kigali")
DESTINATIONS = [{"id": "kigali", "name": "Kigali"}, {"id": "musanze", "name": "Musanze"}]
ITINERARY = [
    {
        "id": "d1",
        "date": "2026-07-01",
        "destination_id": "kigali",
        "day_type": "regular",
        "wake_time": "06:30",
        "lunch_time": "12:00",
    },
    {
        "id": "d2",
        "date": datetime.date(2026, 7, 2),
        "destination_id": "musanze",
        "day_type": "transfer",
        "dinner_time": "late",
    },
]


class AlarmTypeTests(unittest.TestCase):
    def test_alarm_types(self):
        self.assertEqual(notifications.alarm_type("wake-d1"), "wake")
        self.assertEqual(notifications.alarm_type("breakfast-d1"), "meal")
        self.assertEqual(notifications.alarm_type("dinner-d1"), "meal")
        self.assertEqual(notifications.alarm_type("day-d1"), "reminder")


class ScheduleTests(unittest.TestCase):
    def test_builds_daily_and_timed_notifications(self):
        items = notifications.schedule_itinerary_notifications(ITINERARY, DESTINATIONS)

        self.assertEqual([n["tag"] for n in items], ["day-d1", "wake-d1", "lunch-d1", "day-d2"])
        self.assertEqual(items[0]["title"], "Day 1: Kigali")
        self.assertEqual(items[0]["date"], "2026-07-01T07:00:00+02:00")
        self.assertEqual(items[1]["date"], "2026-07-01T06:30:00+02:00")
        self.assertEqual(items[1]["alarmType"], "wake")
        self.assertIn("Kigali", items[1]["body"])
        self.assertEqual(items[3]["title"], "Day 2: Musanze")
        self.assertEqual(items[3]["body"], "Transfer day - Check your itinerary for details")

    def test_unknown_destination_name(self):
        items = notifications.schedule_itinerary_notifications(
            [{"id": "d9", "date": "2026-07-03", "destination_id": "atlantis"}], DESTINATIONS
        )
        self.assertEqual(items[0]["title"], "Day 1: Unknown")


class DueTests(unittest.TestCase):
    def setUp(self):
        self.queue = notifications.schedule_itinerary_notifications(ITINERARY, DESTINATIONS)

    def test_due_within_the_next_hour(self):
        now = datetime.datetime(2026, 7, 1, 6, 30, tzinfo=KIGALI)
        due = notifications.due_notifications(self.queue, now)
        self.assertEqual(sorted(n["tag"] for n in due), ["day-d1", "wake-d1"])

    def test_past_notifications_are_not_due(self):
        now = datetime.datetime(2026, 7, 1, 7, 1, tzinfo=KIGALI)
        due = notifications.due_notifications(self.queue, now)
        self.assertEqual(due, [])


class QueueTests(DatabaseTestCase):
    def test_pop_due_removes_triggered_items(self):
        queue = notifications.schedule_itinerary_notifications(ITINERARY, DESTINATIONS)
        self.assertEqual(notifications.save_schedule("user-1", queue), 4)

        now = datetime.datetime(2026, 7, 1, 6, 30, tzinfo=KIGALI)
        popped = notifications.pop_due("user-1", now)

        self.assertEqual(len(popped), 2)
        remaining = redis_client.get_notification_queue("user-1")
        self.assertEqual([n["tag"] for n in remaining], ["lunch-d1", "day-d2"])
        self.assertEqual(notifications.pop_due("user-1", now), [])

    def test_malformed_queue_is_discarded(self):
        self.redis.set(redis_client.notification_queue_key("user-1"), "not json")
        self.assertEqual(redis_client.get_notification_queue("user-1"), [])


if __name__ == "__main__":
    unittest.main()
