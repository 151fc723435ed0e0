"""
AI旅行プランナー（チャットのストリーミング応答）。
AI trip planner: builds the system prompt and streams gateway completions as SSE.
"""

import json
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

import openai

from rwanda_planner import constants
from rwanda_planner.errors import ApiError
from rwanda_planner.llm_client import get_llm_client

logger = logging.getLogger(__name__)

DEFAULT_DESTINATIONS = "Volcanoes, Akagera, Nyungwe, Lake Kivu, Kigali"
DEFAULT_HOTELS = "Various lodges and hotels"
DEFAULT_ACTIVITIES = "Gorilla trekking, safaris, cultural tours"

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
CREDITS_EXHAUSTED_MESSAGE = "AI credits exhausted. Please add more credits."
SERVICE_ERROR_MESSAGE = "AI service error"

SYSTEM_PROMPT_TEMPLATE = """You are a warm, friendly Rwanda travel expert for "A Click to Rwanda". You chat naturally like a knowledgeable friend who loves Rwanda.

PERSONALITY:
- Be conversational and warm, like chatting with a friend who knows Rwanda intimately
- Ask ONE question at a time, never list multiple questions together
- Show genuine enthusiasm for Rwanda's beauty and culture
- Use natural transitions between topics
- Remember what the user already told you

CRITICAL FORMATTING:
- NEVER use asterisks, bullet points, or markdown
- Write in flowing paragraphs, not lists
- Use emojis naturally but sparingly: 🇷🇼 🦍 🌿 ☀️ 🏨 🎯

CONVERSATION FLOW (one question per message):
Start by warmly greeting and asking what kind of experience they dream of.
Then naturally ask about: when they want to travel, who is joining them, their budget comfort level, and any must-see places.
Keep it conversational - "That sounds amazing! How long are you thinking of staying?" not "Please specify duration."

Available destinations: {destinations}

Available hotels: {hotels}

Available activities: {activities}

ITINERARY FORMAT (when ready to present):

Day 1: [Descriptive title]
📍 Destination: [Place]
🏨 Hotel: [Name]
🎯 Activities:
  Morning: [Activity]
  Afternoon: [Activity]
  Evening: [Activity]
💰 Estimated Cost: [Amount USD]

Add personal touches like "You will love the sunrise here!" or "This is where the magic happens!"
End with an encouraging note about their upcoming adventure."""


def _names(items: Optional[Iterable[Dict[str, Any]]], default: str) -> str:
    names = [str(item.get("name")) for item in (items or []) if item.get("name")]
    return ", ".join(names) or default


def build_system_prompt(
    destinations: Optional[List[Dict[str, Any]]] = None,
    hotels: Optional[List[Dict[str, Any]]] = None,
    activities: Optional[List[Dict[str, Any]]] = None,
) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(
        destinations=_names(destinations, DEFAULT_DESTINATIONS),
        hotels=_names(hotels, DEFAULT_HOTELS),
        activities=_names(activities, DEFAULT_ACTIVITIES),
    )


def map_gateway_error(err: Exception) -> ApiError:
    """
    ゲートウェイのエラーを利用者向けのエラーへ変換する
    Translate a gateway failure into a user-facing error.

    429 → 429, 402 → 402（クレジット切れ）, その他 → 500
    """
    status = getattr(err, "status_code", None)
    if status == 429:
        return ApiError(RATE_LIMIT_MESSAGE, status=429)
    if status == 402:
        return ApiError(CREDITS_EXHAUSTED_MESSAGE, status=402)
    logger.error("AI gateway error: %s %s", status, err)
    return ApiError(SERVICE_ERROR_MESSAGE, status=500)


def sse_event(content: str) -> str:
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _relay(stream: Iterable[Any]) -> Iterator[str]:
    try:
        for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                yield sse_event(content)
    except openai.OpenAIError as e:
        # 送信開始後はステータスを変えられないため、ログのみ残して終了する
        # Headers are already sent; log and end the stream
        logger.error("AI stream interrupted: %s", e)
    yield "data: [DONE]\n\n"


def stream_chat(
    messages: List[Dict[str, str]],
    destinations: Optional[List[Dict[str, Any]]] = None,
    hotels: Optional[List[Dict[str, Any]]] = None,
    activities: Optional[List[Dict[str, Any]]] = None,
) -> Iterator[str]:
    """
    ゲートウェイへストリーミング要求を送り、SSEのイテレータを返す
    Open a streaming completion and return an iterator of SSE lines.

    ゲートウェイの失敗はストリーム開始前に ApiError として送出されます。
    Gateway failures are raised as ApiError before any bytes are streamed.
    """
    system_prompt = build_system_prompt(destinations, hotels, activities)
    try:
        stream = get_llm_client().chat.completions.create(
            model=constants.LLM_MODEL_NAME,
            messages=[{"role": "system", "content": system_prompt}, *messages],
            stream=True,
        )
    except openai.APIStatusError as e:
        raise map_gateway_error(e)
    except openai.OpenAIError as e:
        logger.error("AI gateway request failed: %s", e)
        raise ApiError(SERVICE_ERROR_MESSAGE, status=500)
    return _relay(stream)
