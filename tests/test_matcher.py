"""
旅程取り込み（カタログ照合・日付割り当て・チャット解析）を検証するテスト。
Tests for the itinerary import pipeline: matching, dates and chat parsing.
"""
import datetime
import unittest

from tests.base import DatabaseTestCase

from rwanda_planner import matcher, realtime
from rwanda_planner.database import SessionLocal
from rwanda_planner.models import Activity, Destination, Hotel, Itinerary

DESTINATIONS = [
    {"id": "volcanoes", "name": "Volcanoes"},
    {"id": "kigali", "name": "Kigali City"},
]
HOTELS = [
    {"id": "bisate", "name": "Bisate Lodge", "destination_id": "volcanoes"},
    {"id": "marriott", "name": "Kigali Marriott", "destination_id": "kigali"},
]
ACTIVITIES = [
    {"id": "gorillas", "name": "Gorilla Trekking", "destination_id": "volcanoes"},
    {"id": "museum", "name": "Genocide Memorial", "destination_id": "kigali"},
]


class FindMatchTests(unittest.TestCase):
    def test_guess_containing_catalog_name_matches(self):
        self.assertEqual(matcher.find_match("Volcanoes National Park", DESTINATIONS)["id"], "volcanoes")

    def test_catalog_name_containing_guess_matches(self):
        self.assertEqual(matcher.find_match("kigali", DESTINATIONS)["id"], "kigali")

    def test_first_match_wins(self):
        catalog = [{"id": "a", "name": "Lake"}, {"id": "b", "name": "Lake Kivu"}]
        self.assertEqual(matcher.find_match("Lake Kivu", catalog)["id"], "a")

    def test_blank_guess_never_matches(self):
        self.assertIsNone(matcher.find_match("", DESTINATIONS))
        self.assertIsNone(matcher.find_match(None, DESTINATIONS))

    def test_unknown_guess(self):
        self.assertIsNone(matcher.find_match("UnknownPlace", DESTINATIONS))


class MatchDayTests(unittest.TestCase):
    def test_hotel_and_activity_are_scoped_to_destination(self):
        day = {"destination": "Volcanoes", "hotel": "Kigali Marriott", "activity": "gorilla trekking", "notes": "n"}
        matched = matcher.match_day(day, DESTINATIONS, HOTELS, ACTIVITIES)
        self.assertEqual(matched["destination_id"], "volcanoes")
        self.assertIsNone(matched["hotel_id"])
        self.assertEqual(matched["activity_id"], "gorillas")
        self.assertEqual(matched["notes"], "n")

    def test_unmatched_destination_returns_none(self):
        self.assertIsNone(matcher.match_day({"destination": "Atlantis"}, DESTINATIONS, HOTELS, ACTIVITIES))


class ImportDatesTests(unittest.TestCase):
    def test_start_is_day_after_latest_existing_date(self):
        existing = [datetime.date(2026, 3, 1), datetime.date(2026, 3, 5)]
        self.assertEqual(matcher.import_start_date(existing), datetime.date(2026, 3, 6))

    def test_start_is_today_when_empty(self):
        today = datetime.date(2026, 1, 10)
        self.assertEqual(matcher.import_start_date([], today=today), today)

    def test_day_k_receives_start_plus_k(self):
        start = datetime.date(2026, 3, 2)
        days = [{"destination": "Volcanoes"}, {"destination": "UnknownPlace"}, {"destination": "Kigali"}]
        with self.assertLogs("rwanda_planner.matcher", level="WARNING"):
            rows = matcher.build_import_rows(days, DESTINATIONS, HOTELS, ACTIVITIES, start)
        self.assertEqual([r["date"] for r in rows], [datetime.date(2026, 3, 2), datetime.date(2026, 3, 4)])
        self.assertEqual([r["destination_id"] for r in rows], ["volcanoes", "kigali"])


class ImportDaysTests(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.add(
            Destination(id="volcanoes", name="Volcanoes", description=""),
            Destination(id="kigali", name="Kigali", description=""),
        )
        self.add(
            Hotel(id="bisate", name="Bisate Lodge", destination_id="volcanoes"),
            Activity(id="gorillas", name="Gorilla Trekking", destination_id="volcanoes"),
        )

    def _rows(self, user_id):
        db = SessionLocal()
        try:
            return db.query(Itinerary).filter(Itinerary.user_id == user_id).order_by(Itinerary.date).all()
        finally:
            db.close()

    def test_volcanoes_imported_and_unknown_place_skipped(self):
        days = [{"destination": "Volcanoes National Park"}, {"destination": "UnknownPlace"}]
        result = matcher.import_days("user-1", days, today=datetime.date(2026, 1, 10))

        self.assertEqual(result["inserted"], 1)
        self.assertEqual(result["skipped"], 1)
        self.assertEqual(result["failed"], 0)
        rows = self._rows("user-1")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].destination_id, "volcanoes")
        self.assertEqual(rows[0].date, datetime.date(2026, 1, 10))

    def test_import_continues_after_latest_existing_day(self):
        self.add(Itinerary(user_id="user-1", date=datetime.date(2026, 5, 1), destination_id="kigali"))
        days = [{"destination": "Volcanoes", "hotel": "Bisate", "activity": "Gorilla"}]
        result = matcher.import_days("user-1", days, today=datetime.date(2026, 1, 10))

        self.assertEqual(result["days"][0]["date"], "2026-05-02")
        self.assertEqual(result["days"][0]["hotel_id"], "bisate")
        self.assertEqual(result["days"][0]["activity_id"], "gorillas")

    def test_inserts_are_published_on_the_itinerary_channel(self):
        events = []
        unsubscribe = realtime.subscribe(realtime.itinerary_channel("user-2"), events.append)
        self.addCleanup(unsubscribe)

        matcher.import_days("user-2", [{"destination": "Kigali"}], today=datetime.date(2026, 1, 10))

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["type"], "INSERT")
        self.assertEqual(events[0]["record"]["destination_id"], "kigali")
        self.assertEqual(self.redis.published[0][0], "itinerary:user-2")


CHAT_ANSWER = """What a trip this will be! 🇷🇼

Day 1: Gorilla Adventure
📍 Destination: Volcanoes National Park
🏨 Hotel: Bisate Lodge
🎯 Activities:
  Morning: Gorilla trekking
  Afternoon: Twin lakes walk
  Evening: Cultural dance
💰 Estimated Cost: 1500 USD

Day 2: Free day
Relax and enjoy the views.

Day 3: City Life
📍 Destination: Kigali
🎯 Activities: Memorial visit
"""


class ParseChatItineraryTests(unittest.TestCase):
    def test_parses_day_blocks(self):
        days = matcher.parse_chat_itinerary(CHAT_ANSWER)
        self.assertEqual(len(days), 2)

        first = days[0]
        self.assertEqual(first["destination"], "Volcanoes National Park")
        self.assertEqual(first["hotel"], "Bisate Lodge")
        self.assertEqual(first["activity"], "Gorilla trekking")
        self.assertEqual(
            first["notes"],
            "Gorilla Adventure\nMorning: Gorilla trekking\nAfternoon: Twin lakes walk\n"
            "Evening: Cultural dance\nEstimated cost: 1500 USD",
        )

        second = days[1]
        self.assertEqual(second["destination"], "Kigali")
        self.assertEqual(second["activity"], "Memorial visit")

    def test_text_without_days(self):
        self.assertEqual(matcher.parse_chat_itinerary("Hello! When would you like to travel?"), [])


if __name__ == "__main__":
    unittest.main()
