"""
アップロードされた文書から旅程を抽出する。
Extract an itinerary day list from an uploaded document.

画像はビジョン入力、PDFは pypdf でテキスト化、それ以外はbase64をテキストとして
デコードしてLLMへ渡します。
Images are sent as vision input, PDFs are converted with pypdf, anything else
is base64-decoded as text before the LLM call.
"""

import base64
import binascii
import io
import json
import logging
import re
from typing import Any, Dict, List, Optional

import openai
from pydantic import ValidationError
from pypdf import PdfReader

from rwanda_planner import constants
from rwanda_planner.errors import ApiError
from rwanda_planner.llm_client import get_llm_client
from rwanda_planner.schemas import ExtractedDay

logger = logging.getLogger(__name__)

JSON_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")

EXTRACTION_PROMPT_TEMPLATE = """You are an expert travel itinerary parser. Your job is to extract structured itinerary information from documents.

AVAILABLE DESTINATIONS in Rwanda: {destinations}

AVAILABLE HOTELS: {hotels}

AVAILABLE ACTIVITIES: {activities}

Extract the itinerary into a JSON array with this structure:
[
  {{
    "destination": "exact destination name from the available list",
    "hotel": "hotel name if mentioned (optional)",
    "activity": "main activity for the day if mentioned (optional)",
    "notes": "any other important notes or details (optional)"
  }}
]

RULES:
1. Match destinations to the closest available destination from the list
2. Each day should be a separate object in the array
3. If dates are mentioned, try to preserve the chronological order
4. Extract hotels and activities only if they're clearly mentioned
5. Put extra details in the notes field
6. Return ONLY valid JSON, no markdown or explanation
7. If you cannot identify any itinerary information, return an empty array []"""


def _names(items: Optional[List[Dict[str, Any]]]) -> str:
    return ", ".join(str(item.get("name")) for item in (items or []) if item.get("name"))


def build_extraction_prompt(
    destinations: Optional[List[Dict[str, Any]]],
    hotels: Optional[List[Dict[str, Any]]],
    activities: Optional[List[Dict[str, Any]]],
) -> str:
    return EXTRACTION_PROMPT_TEMPLATE.format(
        destinations=_names(destinations),
        hotels=_names(hotels),
        activities=_names(activities),
    )


def pdf_to_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n".join(pages).strip()


def document_text(file_content: str, file_name: str, file_type: str) -> str:
    """
    文書の本文テキストを取り出す（失敗時は説明用のプレースホルダー）
    Best-effort text of a non-image document, or a descriptive placeholder.
    """
    placeholder = (
        f"[Document: {file_name}] Please analyze this base64-encoded document "
        "and extract any travel itinerary information."
    )
    try:
        raw = base64.b64decode(file_content, validate=False)
    except (binascii.Error, ValueError):
        return placeholder

    if file_type == "application/pdf" or file_name.lower().endswith(".pdf"):
        try:
            text = pdf_to_text(raw)
        except Exception as e:
            logger.warning("Failed to read PDF %s: %s", file_name, e)
            return placeholder
        return text or placeholder

    return raw.decode("utf-8", errors="replace")


def build_user_content(file_content: str, file_name: str, file_type: str) -> List[Dict[str, Any]]:
    if (file_type or "").startswith("image/"):
        return [
            {
                "type": "text",
                "text": "Please extract the travel itinerary from this image. Look for destinations, "
                "dates, hotels, activities, and any travel plans.",
            },
            {"type": "image_url", "image_url": {"url": f"data:{file_type};base64,{file_content}"}},
        ]
    text = document_text(file_content, file_name, file_type or "")
    return [
        {
            "type": "text",
            "text": "Extract the travel itinerary from this document content:\n\n"
            + text[: constants.MAX_EXTRACTED_TEXT_CHARS],
        }
    ]


def parse_itinerary_response(content: str) -> List[Dict[str, Any]]:
    """
    LLM応答から最初のJSON配列を取り出す（解析失敗時は空リスト）
    Pull the first JSON array out of a model answer; [] when it cannot be parsed.
    """
    match = JSON_ARRAY_PATTERN.search(content or "")
    if not match:
        return []
    try:
        items = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.error("Failed to parse AI response as JSON: %s", e)
        return []
    if not isinstance(items, list):
        return []

    days: List[Dict[str, Any]] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            days.append(ExtractedDay(**item).model_dump(exclude_none=True))
        except ValidationError:
            logger.warning("Skipping malformed extracted day: %s", item)
    return days


def extract_itinerary(
    file_content: str,
    file_name: str,
    file_type: str,
    destinations: Optional[List[Dict[str, Any]]] = None,
    hotels: Optional[List[Dict[str, Any]]] = None,
    activities: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    if not file_content:
        raise ApiError("No file content provided", status=400)

    logger.info("Processing document: %s (%s)", file_name, file_type)
    try:
        completion = get_llm_client().chat.completions.create(
            model=constants.LLM_MODEL_NAME,
            messages=[
                {"role": "system", "content": build_extraction_prompt(destinations, hotels, activities)},
                {"role": "user", "content": build_user_content(file_content, file_name or "document", file_type or "")},
            ],
            temperature=constants.EXTRACTION_TEMPERATURE,
        )
    except openai.OpenAIError as e:
        logger.error("AI gateway error: %s", e)
        raise ApiError("Failed to process document", status=500)

    content = completion.choices[0].message.content or ""
    return {"itinerary": parse_itinerary_response(content), "rawResponse": content}
