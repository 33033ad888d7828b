import base64
import json
import logging
import re
from typing import Any, Optional, Protocol

from google import genai
from google.genai import types
from openai import AsyncOpenAI

from wassce_parser.config import Settings, settings as default_settings
from wassce_parser.errors import MalformedServiceResponse

logger = logging.getLogger("services.llm_client")

FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_-]*\s*")
FENCE_CLOSE = re.compile(r"\s*```\s*$")

# ---------------------------
# Backends
# ---------------------------


class GenerativeBackend(Protocol):
    """A generative-completion service. Returns the raw reply text."""

    name: str

    async def generate(
        self,
        prompt: str,
        attachment: Optional[bytes] = None,
        mime_type: Optional[str] = None,
    ) -> str:
        ...


class GeminiBackend:
    name = "gemini"

    def __init__(self, api_key: str, model: str, temperature: float = 0.1, max_output_tokens: int = 2048):
        self.model = model
        self._client = genai.Client(api_key=api_key)
        self._config = types.GenerateContentConfig(
            temperature=temperature,
            top_k=1,
            top_p=1,
            max_output_tokens=max_output_tokens,
        )

    async def generate(self, prompt, attachment=None, mime_type=None) -> str:
        contents: list = [prompt]
        if attachment is not None:
            contents.append(types.Part.from_bytes(data=attachment, mime_type=mime_type or "image/jpeg"))

        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=self._config,
        )
        text = response.text
        if not text:
            raise MalformedServiceResponse("Gemini returned no candidates")
        return text


class OpenAIBackend:
    name = "openai"

    def __init__(self, api_key: str, model: str, temperature: float = 0.1, max_output_tokens: int = 2048):
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._client = AsyncOpenAI(api_key=api_key)

    async def generate(self, prompt, attachment=None, mime_type=None) -> str:
        if attachment is not None:
            data_url = f"data:{mime_type or 'image/jpeg'};base64,{base64.b64encode(attachment).decode('ascii')}"
            user_content: Any = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": data_url}},
            ]
        else:
            user_content = prompt

        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": "You are a JSON-only response engine. Return JSON only."},
                {"role": "user", "content": user_content},
            ],
            temperature=self.temperature,
            max_tokens=self.max_output_tokens,
        )
        content = response.choices[0].message.content
        if not content:
            raise MalformedServiceResponse("OpenAI returned an empty message")
        return content


def build_backend(cfg: Optional[Settings] = None) -> Optional[GenerativeBackend]:
    """
    Create the backend named by LLM_PROVIDER, or None when the provider is
    disabled or its key is missing (callers then run heuristics only).
    """
    cfg = cfg or default_settings
    provider = (cfg.LLM_PROVIDER or "").lower()

    if provider == "gemini":
        if not cfg.GEMINI_API_KEY:
            logger.info("Gemini API key missing; AI backend disabled")
            return None
        return GeminiBackend(cfg.GEMINI_API_KEY, cfg.GEMINI_MODEL, cfg.LLM_TEMPERATURE, cfg.LLM_MAX_OUTPUT_TOKENS)

    if provider == "openai":
        if not cfg.OPENAI_API_KEY:
            logger.info("OpenAI API key missing; AI backend disabled")
            return None
        return OpenAIBackend(cfg.OPENAI_API_KEY, cfg.OPENAI_MODEL, cfg.LLM_TEMPERATURE, cfg.LLM_MAX_OUTPUT_TOKENS)

    if provider not in ("", "none"):
        logger.info("Unknown LLM_PROVIDER=%s; AI backend disabled", provider)
    return None


# ---------------------------
# Reply parsing
# ---------------------------


def strip_code_fences(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = FENCE_CLOSE.sub("", FENCE_OPEN.sub("", cleaned, count=1))
    return cleaned


def find_balanced_span(text: str, opener: str = "{") -> Optional[str]:
    """
    Return the first balanced {...} (or [...]) span in text.
    Brackets inside JSON string literals are ignored.
    """
    closer = "}" if opener == "{" else "]"
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == opener:
                depth += 1
            elif ch == closer:
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # unbalanced from this opener; retry from the next one
        start = text.find(opener, start + 1)
    return None


def _parse_block(text: str, opener: str, kind: type) -> Any:
    span = find_balanced_span(strip_code_fences(text), opener)
    if span is None:
        raise MalformedServiceResponse(f"No JSON {kind.__name__} found in service reply")
    try:
        parsed = json.loads(span)
    except json.JSONDecodeError as e:
        raise MalformedServiceResponse(f"Invalid JSON in service reply: {e}") from e
    if not isinstance(parsed, kind):
        raise MalformedServiceResponse(f"Expected JSON {kind.__name__}, got {type(parsed).__name__}")
    return parsed


def parse_json_object(text: str) -> dict:
    return _parse_block(text, "{", dict)


def parse_json_array(text: str) -> list:
    return _parse_block(text, "[", list)
