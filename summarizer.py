"""
Post summaries through the Gemini REST API.

When the service is not configured or fails, a summary is derived locally
from the post so the endpoint still answers.
"""
import json
import logging
from typing import Any

import requests

import config

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
PROMPT_CONTENT_LIMIT = 3000
FALLBACK_CONTENT_LIMIT = 400


def content_text(content: Any) -> str:
    """Flatten the editor blob into plain text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        # editor.js style {"blocks": [{"data": {"text": ...}}]}
        blocks = content.get("blocks")
        if isinstance(blocks, list):
            parts = []
            for block in blocks:
                data = block.get("data", {}) if isinstance(block, dict) else {}
                text = data.get("text")
                if isinstance(text, str):
                    parts.append(text)
            if parts:
                return "\n".join(parts)
    return json.dumps(content)


def fallback_summary(title: str, content: Any) -> str:
    return (
        f'## Summary of "{title}"\n\n'
        f"{content_text(content)[:FALLBACK_CONTENT_LIMIT]}...\n\n"
        "*This is a basic summary. AI service is temporarily unavailable.*"
    )


def request_summary(title: str, content: Any) -> str:
    prompt = (
        "Please provide a comprehensive summary of this blog post in 3-4 paragraphs.\n"
        f"Title: {title}\n"
        f"Content: {content_text(content)[:PROMPT_CONTENT_LIMIT]}...\n\n"
        "Please make the summary engaging and highlight the key points. Return response only in string format"
    )
    response = requests.post(
        GEMINI_URL.format(model=config.GEMINI_MODEL),
        params={"key": config.GEMINI_API_KEY},
        json={"contents": [{"parts": [{"text": prompt}]}]},
        timeout=config.AI_TIMEOUT,
    )
    response.raise_for_status()
    data = response.json()
    return data["candidates"][0]["content"]["parts"][0]["text"]


def summarize_post(title: str, content: Any) -> str:
    if not config.GEMINI_API_KEY:
        return fallback_summary(title, content)
    try:
        summary = request_summary(title, content)
    except (requests.RequestException, KeyError, IndexError, TypeError, ValueError) as exc:
        logger.warning("AI summary failed, using fallback: %s", exc)
        return fallback_summary(title, content)
    return summary if isinstance(summary, str) and summary.strip() else fallback_summary(title, content)
