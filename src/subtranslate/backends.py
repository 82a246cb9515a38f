"""Translation backends: OpenAI-compatible chat APIs and local Ollama.

Every backend satisfies the same contract: given a list of units and a
language pair it returns the units it managed to translate. Leaving an id
out of the response is how a backend reports "not translated this round";
anything that prevents a usable response raises ``BackendError``.
"""

import json
import logging
import re
from typing import Annotated, Literal, Union

import httpx
import ollama
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, Field, TypeAdapter

from .config import Config
from .errors import BackendError, ConfigurationError
from .languages import get_language_name
from .models import TranslationBackend, TranslationUnit

logger = logging.getLogger(__name__)


TRANSLATION_SYSTEM_PROMPT = """You are a professional subtitle translator. Translate the following JSON values from {source_lang} to {target_lang}.

Rules:
1. Only translate the values of the JSON object. Do not modify, remove, rename or add any keys
2. Return every key of the input, even if its value is empty or untranslatable (then keep the original value)
3. Keep translations natural and appropriate for subtitles (concise, readable)
4. Use the surrounding subtitles as context so the dialogue stays coherent
5. Adapt idioms and cultural references so the meaning and tone carry over
6. Preserve line breaks and speaker indicators like [Speaker 1:] if present
7. Return ONLY valid JSON, no other text

Input format: {{"1": "original text", "2": "original text"}}
Output format: {{"1": "translated text", "2": "translated text"}}"""

DEFAULT_TIMEOUT = 180.0


def build_messages(
    units: list[TranslationUnit],
    source_language: str,
    target_language: str,
    prompt: str = TRANSLATION_SYSTEM_PROMPT,
) -> list[dict[str, str]]:
    """Build the chat messages for one translation request.

    The batch is sent as a JSON object keyed by caption id, since JSON mode
    on the chat APIs only guarantees an object at the top level.
    """
    payload = {unit.id: unit.text for unit in units}
    return [
        {
            "role": "system",
            "content": prompt.format(
                source_lang=get_language_name(source_language),
                target_lang=get_language_name(target_language),
            ),
        },
        {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
    ]


def _fix_json(text: str) -> str:
    """Attempt to fix common JSON issues from LLM output."""
    # Remove markdown code blocks
    text = re.sub(r"^```(?:json)?\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"^```\s*$", "", text, flags=re.MULTILINE)

    match = re.search(r"\{.*\}", text, re.DOTALL)
    if not match:
        raise ValueError("Could not find JSON object in response")

    json_str = match.group()

    # Trailing commas before } or ]
    json_str = re.sub(r",\s*}", "}", json_str)
    json_str = re.sub(r",\s*]", "]", json_str)

    return json_str


def parse_translation_response(
    response: str | None, units: list[TranslationUnit]
) -> list[TranslationUnit]:
    """Parse an LLM response into translated units.

    Keys that were not part of the request are dropped, as are null values.
    Missing keys are simply absent from the result.

    Raises:
        BackendError: The response is empty, an error message, or not a JSON object.
    """
    if response is None or not response.strip():
        raise BackendError("Empty response from translation backend")
    if response.lstrip().startswith("Error:"):
        raise BackendError(response.strip())

    try:
        # strict=False tolerates raw newlines inside string values
        translated = json.loads(_fix_json(response), strict=False)
    except (json.JSONDecodeError, ValueError) as e:
        raise BackendError(
            f"Invalid JSON in response: {e}\nResponse: {response[:500]}"
        ) from e

    if not isinstance(translated, dict):
        raise BackendError(f"Expected a JSON object, got {type(translated).__name__}")

    requested = {unit.id for unit in units}
    result = []
    for key, value in translated.items():
        key = str(key)
        if key not in requested:
            logger.debug("Dropping unexpected key %r from backend response", key)
            continue
        if value is None:
            continue
        result.append(
            TranslationUnit(id=key, text=value if isinstance(value, str) else str(value))
        )

    return result


def _supports_temperature(model: str) -> bool:
    # Reasoning models and GPT-5 don't accept a custom temperature
    return not model.startswith(("gpt-5", "o1", "o3", "o4"))


class OpenAIBackend:
    """Translate through an OpenAI-compatible chat completions API.

    Also serves DeepSeek, OpenRouter and Groq through ``base_url``.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float = 0.0,
        seed: int | None = 1234,
        prompt: str = TRANSLATION_SYSTEM_PROMPT,
        timeout: float = DEFAULT_TIMEOUT,
        client: AsyncOpenAI | None = None,
    ):
        if not api_key:
            raise ValueError("API key is required")
        if not model:
            raise ValueError("Model is required")

        self.model = model
        self.temperature = temperature
        self.seed = seed
        self.prompt = prompt
        self.client = client or AsyncOpenAI(
            api_key=api_key, base_url=base_url, timeout=timeout
        )

    async def translate(
        self,
        units: list[TranslationUnit],
        source_language: str,
        target_language: str,
    ) -> list[TranslationUnit]:
        kwargs = {
            "model": self.model,
            "messages": build_messages(units, source_language, target_language, self.prompt),
            "response_format": {"type": "json_object"},
        }
        if _supports_temperature(self.model):
            kwargs["temperature"] = self.temperature
        if self.seed is not None:
            kwargs["seed"] = self.seed

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except OpenAIError as e:
            raise BackendError(f"{self.model} request failed: {e}") from e

        if not response.choices:
            raise BackendError(f"No response from {self.model}")

        return parse_translation_response(response.choices[0].message.content, units)

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self.client.close()


class OllamaBackend:
    """Translate with a local Ollama model."""

    def __init__(
        self,
        model: str = "llama3.1:8b",
        host: str | None = None,
        temperature: float = 0.3,
        prompt: str = TRANSLATION_SYSTEM_PROMPT,
        timeout: float = DEFAULT_TIMEOUT,
        client: ollama.AsyncClient | None = None,
    ):
        self.model = model
        self.temperature = temperature
        self.prompt = prompt
        self.client = client or ollama.AsyncClient(host=host, timeout=timeout)

    async def translate(
        self,
        units: list[TranslationUnit],
        source_language: str,
        target_language: str,
    ) -> list[TranslationUnit]:
        try:
            response = await self.client.chat(
                model=self.model,
                messages=build_messages(units, source_language, target_language, self.prompt),
                format="json",
                options={"temperature": self.temperature},
            )
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            raise BackendError(f"Ollama {self.model} request failed: {e}") from e

        return parse_translation_response(response["message"]["content"], units)

    async def aclose(self) -> None:
        await self.client.close()


class OpenAISettings(BaseModel):
    kind: Literal["openai"] = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    seed: int | None = 1234


class DeepSeekSettings(BaseModel):
    kind: Literal["deepseek"] = "deepseek"
    model: str = "deepseek-chat"
    temperature: float = 0.3


class OpenRouterSettings(BaseModel):
    kind: Literal["openrouter"] = "openrouter"
    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.0


class GroqSettings(BaseModel):
    kind: Literal["groq"] = "groq"
    model: str = "llama-3.3-70b-versatile"
    temperature: float = 0.0


class OllamaSettings(BaseModel):
    kind: Literal["ollama"] = "ollama"
    model: str = "llama3.1:8b"
    temperature: float = 0.3


BackendSettings = Annotated[
    Union[OpenAISettings, DeepSeekSettings, OpenRouterSettings, GroqSettings, OllamaSettings],
    Field(discriminator="kind"),
]

BACKEND_KINDS = ["openai", "deepseek", "openrouter", "groq", "ollama"]

_settings_adapter = TypeAdapter(BackendSettings)


def backend_settings(kind: str, model: str | None = None) -> BackendSettings:
    """Build backend settings for a provider name, with an optional model override."""
    data = {"kind": kind}
    if model:
        data["model"] = model
    try:
        return _settings_adapter.validate_python(data)
    except ValueError as e:
        raise ConfigurationError(f"Unknown translation provider: {kind}") from e


def _require_key(configured: bool, env_var: str, provider: str) -> None:
    if not configured:
        raise ConfigurationError(
            f"{env_var} environment variable required for {provider}. "
            "Use --llm ollama for offline mode."
        )


def create_backend(settings: BackendSettings, config: Config) -> TranslationBackend:
    """Create the backend described by ``settings``."""
    if isinstance(settings, OpenAISettings):
        _require_key(config.has_openai(), "OPENAI_API_KEY", "OpenAI")
        return OpenAIBackend(
            api_key=config.openai_api_key,
            model=settings.model,
            temperature=settings.temperature,
            seed=settings.seed,
        )
    elif isinstance(settings, DeepSeekSettings):
        _require_key(config.has_deepseek(), "DEEPSEEK_API_KEY", "DeepSeek")
        return OpenAIBackend(
            api_key=config.deepseek_api_key,
            model=settings.model,
            base_url=config.deepseek_base_url,
            temperature=settings.temperature,
            seed=None,
        )
    elif isinstance(settings, OpenRouterSettings):
        _require_key(config.has_openrouter(), "OPENROUTER_API_KEY", "OpenRouter")
        return OpenAIBackend(
            api_key=config.openrouter_api_key,
            model=settings.model,
            base_url=config.openrouter_base_url,
            temperature=settings.temperature,
            seed=None,
        )
    elif isinstance(settings, GroqSettings):
        _require_key(config.has_groq(), "GROQ_API_KEY", "Groq")
        return OpenAIBackend(
            api_key=config.groq_api_key,
            model=settings.model,
            base_url=config.groq_base_url,
            temperature=settings.temperature,
            seed=None,
        )
    elif isinstance(settings, OllamaSettings):
        return OllamaBackend(
            model=settings.model,
            host=config.ollama_host,
            temperature=settings.temperature,
        )
    else:
        raise ConfigurationError(f"Unknown translation provider: {settings!r}")
