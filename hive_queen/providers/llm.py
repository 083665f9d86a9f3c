"""OpenAI-compatible text generator for structured objects."""

import json
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from hive_queen.config.settings import LLMSettings
from hive_queen.providers.base import GenerationResult, ModelT, RepairHook, TextGenerator
from hive_queen.utils.retry import async_retry

log = structlog.get_logger(__name__)


class OpenAICompatibleGenerator(TextGenerator):
    """Text generator for servers implementing the OpenAI chat completions API.

    The model is asked for a JSON object matching the schema; the reply is
    validated with pydantic. Malformed output is passed once through the
    caller's repair hook before giving up.
    """

    def __init__(self, settings: LLMSettings):
        """Initialize the generator.

        Args:
            settings: Endpoint, model, credentials and token limit
        """
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")

        headers = {"Content-Type": "application/json"}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"

        self.client = httpx.AsyncClient(timeout=settings.timeout, headers=headers)

    async def close(self) -> None:
        await self.client.aclose()

    @async_retry(max_attempts=3, backoff_factor=2.0)
    async def _complete(self, payload: dict[str, Any]) -> str:
        response = await self.client.post(f"{self.base_url}/chat/completions", json=payload)
        response.raise_for_status()

        choices = response.json().get("choices", [])
        if not choices:
            return ""
        return choices[0].get("message", {}).get("content", "") or ""

    async def generate_object(
        self,
        prompt: str,
        schema: type[ModelT],
        repair: RepairHook | None = None,
        **options: Any,
    ) -> GenerationResult[ModelT]:
        if not self.settings.enabled:
            return GenerationResult(success=False, reason="text generation is not configured")

        instructions = (
            "Respond with a single JSON object matching this JSON schema, and nothing else:\n"
            f"{json.dumps(schema.model_json_schema())}"
        )
        payload = {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": instructions},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.settings.max_tokens,
            "temperature": options.get("temperature", 0.3),
        }

        log.info("generate_object", model=self.settings.model, schema=schema.__name__)

        try:
            raw = await self._complete(payload)
        except httpx.HTTPStatusError as e:
            log.error("generation_request_failed", status_code=e.response.status_code, error=str(e))
            return GenerationResult(success=False, reason=f"API error ({e.response.status_code})")
        except httpx.HTTPError as e:
            log.error("generation_request_failed", error=str(e))
            return GenerationResult(success=False, reason=f"request failed: {e}")

        if not raw:
            return GenerationResult(success=False, reason="empty response")

        try:
            return GenerationResult(success=True, data=schema.model_validate_json(raw))
        except ValidationError as e:
            first_error = str(e)

        if repair is not None:
            repaired = repair(raw)
            if repaired is not None:
                try:
                    data = schema.model_validate_json(repaired)
                    log.info("generation_output_repaired", schema=schema.__name__)
                    return GenerationResult(success=True, data=data)
                except ValidationError as e:
                    first_error = str(e)

        log.warning("generation_output_invalid", schema=schema.__name__, error=first_error)
        return GenerationResult(success=False, reason=f"malformed output: {first_error}")
