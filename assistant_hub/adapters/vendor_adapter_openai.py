"""OpenAI vendor adapter for Chat Completions."""

import json
import logging
from typing import Dict, List

import openai
from openai import AsyncOpenAI

from assistant_hub.infra.config import config
from assistant_hub.infra.error_handler import UnavailableError, classify_status, parse_retry_after

logger = logging.getLogger(__name__)


def build_openai_messages(
    system_prompt: str,
    history: List[Dict[str, str]],
    user_message: str,
) -> List[Dict[str, str]]:
    """System prompt first, then history, then the current user turn."""
    messages = [{"role": "system", "content": system_prompt}]
    for msg in history:
        messages.append({"role": msg["role"], "content": msg["content"]})
    messages.append({"role": "user", "content": user_message})
    return messages


def _error_body(error: openai.APIStatusError) -> str:
    if error.body:
        return json.dumps(error.body) if not isinstance(error.body, str) else error.body
    return error.message or ""


class OpenAIChatBackend:
    """Chat Completions backend. Web search is not supported and is ignored."""
    name = "openai"
    default_model = config.DEFAULT_OPENAI_MODEL
    model_prefixes = ("gpt-", "chatgpt-", "o1", "o3", "o4")
    supports_web_search = False

    async def complete(self, api_key, model, system_prompt, history, user_message, options) -> str:
        # SDK retries are disabled; retry policy belongs to the caller
        client = AsyncOpenAI(api_key=api_key, max_retries=0, timeout=config.LLM_CALL_TIMEOUT)

        request = {
            "model": model,
            "messages": build_openai_messages(system_prompt, history, user_message),
            "max_tokens": options.max_tokens,
        }
        if options.temperature is not None:
            request["temperature"] = options.temperature

        try:
            completion = await client.chat.completions.create(**request)
        except openai.APIStatusError as e:
            logger.warning(
                "OpenAI returned an error status",
                extra={"status_code": e.status_code, "model": model},
            )
            raise classify_status(
                e.status_code,
                _error_body(e),
                self.name,
                retry_after=parse_retry_after(e.response.headers.get("retry-after")),
            )
        except openai.APIConnectionError as e:
            # Includes APITimeoutError
            raise UnavailableError(f"openai request failed: {type(e).__name__}", provider=self.name)
        finally:
            await client.close()

        if not completion.choices:
            raise UnavailableError("openai returned no choices", provider=self.name)
        return completion.choices[0].message.content or ""
