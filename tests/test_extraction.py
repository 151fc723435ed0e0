import base64
import unittest
from unittest import mock

import openai

from rwanda_planner import extraction
from rwanda_planner.errors import ApiError


def _completion(content):
    message = mock.Mock(content=content)
    return mock.Mock(choices=[mock.Mock(message=message)])


class ParseResponseTests(unittest.TestCase):
    def test_extracts_first_json_array(self):
        content = 'Here you go:\n[{"destination": "Kigali", "notes": "arrive"}, {"destination": "Musanze"}]\nEnjoy!'
        days = extraction.parse_itinerary_response(content)
        self.assertEqual([d["destination"] for d in days], ["Kigali", "Musanze"])
        self.assertEqual(days[0]["notes"], "arrive")

    def test_invalid_json_yields_empty_list(self):
        self.assertEqual(extraction.parse_itinerary_response("[not json]"), [])
        self.assertEqual(extraction.parse_itinerary_response("no itinerary found"), [])

    def test_items_without_destination_are_dropped(self):
        days = extraction.parse_itinerary_response('[{"hotel": "Lodge"}, {"destination": "Nyungwe"}]')
        self.assertEqual([d["destination"] for d in days], ["Nyungwe"])


class DocumentContentTests(unittest.TestCase):
    def test_text_document_is_decoded(self):
        encoded = base64.b64encode("Day 1: Kigali".encode("utf-8")).decode("ascii")
        content = extraction.build_user_content(encoded, "plan.txt", "text/plain")
        self.assertIn("Day 1: Kigali", content[0]["text"])

    def test_image_becomes_data_url(self):
        content = extraction.build_user_content("aGVsbG8=", "plan.png", "image/png")
        self.assertEqual(content[1]["image_url"]["url"], "data:image/png;base64,aGVsbG8=")

    def test_long_text_is_truncated(self):
        encoded = base64.b64encode(("x" * 20000).encode("utf-8")).decode("ascii")
        content = extraction.build_user_content(encoded, "plan.txt", "text/plain")
        self.assertTrue(content[0]["text"].endswith("x" * 10000))
        self.assertNotIn("x" * 10001, content[0]["text"])

    def test_unreadable_pdf_uses_placeholder(self):
        encoded = base64.b64encode(b"not a pdf").decode("ascii")
        text = extraction.document_text(encoded, "trip.pdf", "application/pdf")
        self.assertIn("[Document: trip.pdf]", text)

    def test_prompt_lists_catalog_names(self):
        prompt = extraction.build_extraction_prompt([{"name": "Kigali"}, {"name": "Akagera"}], [], None)
        self.assertIn("AVAILABLE DESTINATIONS in Rwanda: Kigali, Akagera", prompt)


class ExtractItineraryTests(unittest.TestCase):
    def test_empty_file(self):
        with self.assertRaises(ApiError) as ctx:
            extraction.extract_itinerary("", "a.txt", "text/plain")
        self.assertEqual(ctx.exception.status, 400)

    def test_returns_itinerary_and_raw_response(self):
        client = mock.Mock()
        client.chat.completions.create.return_value = _completion('[{"destination": "Kigali"}]')
        encoded = base64.b64encode(b"Kigali for a day").decode("ascii")
        with mock.patch.object(extraction, "get_llm_client", return_value=client):
            result = extraction.extract_itinerary(encoded, "a.txt", "text/plain", [{"name": "Kigali"}])

        self.assertEqual(result["itinerary"][0]["destination"], "Kigali")
        self.assertEqual(result["rawResponse"], '[{"destination": "Kigali"}]')
        self.assertEqual(client.chat.completions.create.call_args.kwargs["temperature"], 0.1)

    def test_gateway_failure(self):
        client = mock.Mock()
        client.chat.completions.create.side_effect = openai.APIConnectionError(request=mock.Mock())
        with mock.patch.object(extraction, "get_llm_client", return_value=client):
            with self.assertRaises(ApiError) as ctx:
                extraction.extract_itinerary("aGk=", "a.txt", "text/plain")
        self.assertEqual(ctx.exception.status, 500)
        self.assertEqual(ctx.exception.message, "Failed to process document")


if __name__ == "__main__":
    unittest.main()
