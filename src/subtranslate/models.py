"""Data models for subtranslate."""

from typing import Protocol

from pydantic import BaseModel


class Caption(BaseModel):
    """A single subtitle cue with timing and text."""

    id: str
    start_time: str  # HH:MM:SS,mmm
    end_time: str  # HH:MM:SS,mmm
    start_seconds: float
    end_seconds: float
    text: str

    def to_unit(self) -> "TranslationUnit":
        """Project to the payload sent to a translation backend."""
        return TranslationUnit(id=self.id, text=self.text)

    def with_text(self, text: str) -> "Caption":
        """Return a copy of this caption carrying different text."""
        return self.model_copy(update={"text": text})


class TranslationUnit(BaseModel):
    """Caption id and text, without timing."""

    id: str
    text: str


class TranslationStarted(BaseModel):
    caption_count: int
    batch_count: int


class TranslationFinished(BaseModel):
    duration_ms: int
    duration_formatted: str


class TranslationError(BaseModel):
    message: str
    caption_id: str | None = None


class TranslationBackend(Protocol):
    """Anything that can translate a batch of units.

    Returns the subset of ``units`` it translated; an omitted id means
    "not translated this round". Hard failures raise.
    """

    async def translate(
        self,
        units: list[TranslationUnit],
        source_language: str,
        target_language: str,
    ) -> list[TranslationUnit]:
        ...
