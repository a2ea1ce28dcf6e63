"""Gemini vendor adapter for the generateContent REST API."""

import logging
from typing import Any, Dict, List

import httpx

from assistant_hub.infra.config import config
from assistant_hub.infra.error_handler import UnavailableError, classify_status, parse_retry_after

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


def build_gemini_payload(
    system_prompt: str,
    history: List[Dict[str, str]],
    user_message: str,
    max_tokens: int,
    temperature=None,
    web_search: bool = False,
) -> Dict[str, Any]:
    """
    Convert the normalized conversation into a generateContent request body.

    Gemini has no system role in ``contents``; the system prompt goes into
    ``systemInstruction`` and assistant turns use the ``model`` role.
    """
    contents = []
    for msg in history:
        role = "model" if msg["role"] == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": msg["content"]}]})
    contents.append({"role": "user", "parts": [{"text": user_message}]})

    generation_config: Dict[str, Any] = {"maxOutputTokens": max_tokens}
    if temperature is not None:
        generation_config["temperature"] = temperature

    payload: Dict[str, Any] = {
        "contents": contents,
        "systemInstruction": {"parts": [{"text": system_prompt}]},
        "generationConfig": generation_config,
    }
    if web_search:
        payload["tools"] = [{"google_search": {}}]
    return payload


def extract_gemini_text(result: Dict[str, Any]) -> str:
    """Join the text parts of the first candidate."""
    candidates = result.get("candidates") or []
    if not candidates:
        block_reason = (result.get("promptFeedback") or {}).get("blockReason")
        raise UnavailableError(
            f"gemini returned no candidates{f' ({block_reason})' if block_reason else ''}",
            provider="gemini",
        )
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part["text"] for part in parts if isinstance(part, dict) and "text" in part)


class GeminiBackend:
    """generateContent backend. Supports the Google Search grounding tool."""
    name = "gemini"
    default_model = config.DEFAULT_GEMINI_MODEL
    model_prefixes = ("gemini-",)
    supports_web_search = True

    async def complete(self, api_key, model, system_prompt, history, user_message, options) -> str:
        base = config.GEMINI_API_BASE or GEMINI_API_BASE
        url = f"{base}/models/{model}:generateContent"
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": api_key,
        }
        payload = build_gemini_payload(
            system_prompt,
            history,
            user_message,
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            web_search=options.web_search,
        )

        try:
            async with httpx.AsyncClient(timeout=config.LLM_CALL_TIMEOUT) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise UnavailableError(f"gemini request failed: {type(e).__name__}", provider=self.name)

        if response.status_code >= 400:
            logger.warning(
                "Gemini returned an error status",
                extra={"status_code": response.status_code, "model": model},
            )
            raise classify_status(
                response.status_code,
                response.text,
                self.name,
                retry_after=parse_retry_after(response.headers.get("retry-after")),
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        # A 2xx body is not guaranteed to be a JSON object
        if not isinstance(body, dict):
            logger.warning(
                "Gemini returned a non-JSON body",
                extra={"status_code": response.status_code, "model": model},
            )
            raise UnavailableError("gemini returned an unreadable response", provider=self.name)

        return extract_gemini_text(body)
