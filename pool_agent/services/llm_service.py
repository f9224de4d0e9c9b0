"""
Model service: one boundary where chat model output is normalised.

Callers get either plain text or a validated pydantic object; content-block
lists, markdown fences and JSON parsing are handled here once.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any, TypeVar, overload

from pydantic import BaseModel, ValidationError

from pool_agent.core.exceptions import ModelOutputError
from pool_agent.core.logging import get_logger

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.messages import BaseMessage

    from pool_agent.core.config import Settings

logger = get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


def _content_text(content: Any) -> str:
    """Flatten an AIMessage content (str or list of content blocks) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return json.dumps(content)


def parse_structured(raw_text: str, schema: type[SchemaT]) -> SchemaT:
    """Parse model text (optionally fenced) into `schema`."""
    text = _FENCE_OPEN.sub("", raw_text.strip())
    text = _FENCE_CLOSE.sub("", text).strip()
    try:
        return schema.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ModelOutputError(f"{schema.__name__}: {e}") from e


class ModelClient:
    def __init__(self, llm: BaseChatModel, name: str = "model") -> None:
        self.llm = llm
        self.name = name

    @classmethod
    def from_settings(cls, settings: Settings, model: str, temperature: float) -> ModelClient:
        from langchain_google_genai import ChatGoogleGenerativeAI

        llm = ChatGoogleGenerativeAI(
            model=model,
            temperature=temperature,
            google_api_key=settings.google_api_key,
        )
        return cls(llm, name=model)

    @overload
    async def generate(self, messages: str | list[BaseMessage], schema: None = None) -> str: ...

    @overload
    async def generate(self, messages: str | list[BaseMessage], schema: type[SchemaT]) -> SchemaT: ...

    async def generate(
        self,
        messages: str | list[BaseMessage],
        schema: type[SchemaT] | None = None,
    ) -> str | SchemaT:
        """
        Invoke the model.

        Without a schema the stripped response text is returned. With one, the
        response must be a JSON object matching it, else ModelOutputError.
        """
        response = await self.llm.ainvoke(messages)
        text = _content_text(response.content).strip()
        if schema is None:
            return text
        result = parse_structured(text, schema)
        logger.debug("model_structured_output", model=self.name, schema=schema.__name__)
        return result
