"""
OpenAI互換のLLMゲートウェイクライアントの生成と再利用。
Factory for an OpenAI-compatible LLM gateway client with caching.
"""

import os
from typing import Optional

import openai

from rwanda_planner import constants

_client: Optional[openai.OpenAI] = None


def get_llm_client() -> openai.OpenAI:
    """
    LLMクライアントを生成・再利用する
    Create and reuse a singleton gateway client.
    """
    global _client
    if _client is None:
        # 初回のみ環境変数を読み込み、クライアントを生成
        # Initialize the client only once
        api_key = os.environ.get("LLM_API_KEY")
        if not api_key:
            raise RuntimeError("LLM_API_KEY is not configured")
        # ゲートウェイ側の429/402をそのまま呼び出し元へ返すため、リトライしない
        # No client-side retries so gateway 429/402 reach the caller as-is
        _client = openai.OpenAI(base_url=constants.LLM_BASE_URL, api_key=api_key, max_retries=0)
    return _client
