import asyncio
import json
import re
from typing import Optional, Type, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel

from ..config import Settings, get_settings

OutputModel = TypeVar("OutputModel", bound=BaseModel)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


def strip_code_fence(content: str) -> str:
    cleaned = content.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned)
        cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


class LLMClient:
    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        settings = settings or get_settings()
        self.timeout = settings.llm_timeout_seconds
        self.default_model = settings.openai_model
        if client is not None:
            self.client = client
            return
        if not settings.openai_api_key:
            # allow caller to handle absence
            self.client = None
            return
        self.client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=str(settings.openai_api_base) if settings.openai_api_base else None,
            timeout=self.timeout,
            max_retries=0,
        )

    async def generate_structured(
        self, prompt: str, output_model: Type[OutputModel], model: Optional[str] = None
    ) -> OutputModel:
        """Ask the model for a JSON object matching ``output_model``.

        Raises RuntimeError when unconfigured, asyncio.TimeoutError past the
        hard timeout, and pydantic.ValidationError on a malformed object.
        """
        if not self.client:
            raise RuntimeError("LLM client not configured")
        system_prompt = (
            "Respond with a single JSON object and nothing else. "
            f"It must satisfy this JSON schema: {json.dumps(output_model.model_json_schema())}"
        )
        resp = await asyncio.wait_for(
            self.client.chat.completions.create(
                model=model or self.default_model,
                messages=[{"role": "system", "content": system_prompt}, {"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
                temperature=0,
            ),
            timeout=self.timeout,
        )
        content = resp.choices[0].message.content or ""
        return output_model.model_validate_json(strip_code_fence(content))

    async def close(self) -> None:
        if self.client:
            await self.client.close()
