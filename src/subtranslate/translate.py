"""Batched subtitle translation with bounded concurrency.

Captions are projected to id/text units, split into fixed-size batches and
sent to a translation backend with at most ``max_concurrency`` batches in
flight. Backends may silently drop entries, so each batch re-sends only the
entries that are still missing until every id has come back. Results are
reattached to the original captions by id, so timings are never touched and
output order always follows input order.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

from .config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_SOURCE_LANGUAGE,
    DEFAULT_TARGET_LANGUAGE,
)
from .models import (
    Caption,
    TranslationBackend,
    TranslationError,
    TranslationFinished,
    TranslationStarted,
    TranslationUnit,
)

logger = logging.getLogger(__name__)

TranslateFunction = Callable[[list[TranslationUnit], str, str], Awaitable[list[TranslationUnit]]]


def split_into_batches(
    units: list[TranslationUnit], batch_size: int
) -> list[list[TranslationUnit]]:
    """Split units into contiguous batches of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    return [units[i:i + batch_size] for i in range(0, len(units), batch_size)]


def format_duration(seconds: float) -> str:
    """Format a duration in seconds as HH:MM:SS."""
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _missing_units(
    batch: list[TranslationUnit], translated: list[TranslationUnit]
) -> list[TranslationUnit]:
    seen = {unit.id for unit in translated}
    return [unit for unit in batch if unit.id not in seen]


class BatchTranslator:
    """Translate captions in concurrent batches through a backend.

    Args:
        backend: A ``TranslationBackend`` or a bare async function with the
            same signature as ``TranslationBackend.translate``.
        batch_size: Maximum number of captions per backend request.
        max_concurrency: Maximum number of batches in flight at once.
        source_language: Language code of the input captions.
        target_language: Language code to translate to.
        max_retries: Retry rounds per batch for entries the backend left
            out. ``None`` retries until every entry is returned.
        retry_delay: Base delay in seconds for exponential backoff between
            retry rounds. 0 disables the delay.
        on_start: Called with ``TranslationStarted`` once batches are built.
        on_finish: Called with ``TranslationFinished`` once every batch settled.
        on_error: Called with ``TranslationError`` for each caption that ends
            up without a translation.
    """

    def __init__(
        self,
        backend: TranslationBackend | TranslateFunction,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrency: int = DEFAULT_CONCURRENCY,
        source_language: str = DEFAULT_SOURCE_LANGUAGE,
        target_language: str = DEFAULT_TARGET_LANGUAGE,
        max_retries: int | None = None,
        retry_delay: float = 0.0,
        on_start: Callable[[TranslationStarted], None] | None = None,
        on_finish: Callable[[TranslationFinished], None] | None = None,
        on_error: Callable[[TranslationError], None] | None = None,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")
        if max_retries is not None and max_retries < 0:
            raise ValueError(f"max_retries must not be negative, got {max_retries}")

        self._translate_fn: TranslateFunction = getattr(backend, "translate", backend)
        self.batch_size = batch_size
        self.max_concurrency = max_concurrency
        self.source_language = source_language
        self.target_language = target_language
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.on_start = on_start
        self.on_finish = on_finish
        self.on_error = on_error

    async def _call_backend(self, units: list[TranslationUnit]) -> list[TranslationUnit]:
        response = await self._translate_fn(
            units, self.source_language, self.target_language
        )
        requested = {unit.id for unit in units}
        result = []
        for item in response:
            unit = TranslationUnit.model_validate(item)
            # Backends must not invent ids
            if unit.id in requested:
                result.append(unit)
        return result

    async def _translate_batch(
        self, batch: list[TranslationUnit], semaphore: asyncio.Semaphore
    ) -> list[TranslationUnit]:
        async with semaphore:
            translated = await self._call_backend(batch)
            missing = _missing_units(batch, translated)

            attempt = 0
            while missing:
                if self.max_retries is not None and attempt >= self.max_retries:
                    logger.warning(
                        "Giving up on %d captions after %d retries: %s",
                        len(missing),
                        attempt,
                        ", ".join(unit.id for unit in missing),
                    )
                    break

                if self.retry_delay > 0:
                    await asyncio.sleep(self.retry_delay * 2 ** attempt)
                attempt += 1
                logger.debug(
                    "Retrying %d missing captions (attempt %d)", len(missing), attempt
                )

                translated.extend(await self._call_backend(missing))
                # Always measured against the whole batch
                missing = _missing_units(batch, translated)

            return translated

    async def _run_batches(
        self, batches: list[list[TranslationUnit]]
    ) -> list[TranslationUnit]:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.create_task(self._translate_batch(batch, semaphore))
            for batch in batches
        ]

        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return [unit for batch_result in results for unit in batch_result]

    async def translate(self, captions: list[Caption]) -> list[Caption]:
        """Translate captions, returning new captions in the same order.

        Captions the backend never returned keep their original text and are
        reported through ``on_error``. A backend exception aborts the whole
        call and is re-raised.
        """
        units = [caption.to_unit() for caption in captions]
        batches = split_into_batches(units, self.batch_size)

        started = time.monotonic()
        logger.info(
            "Translating %d captions in %d batches (%s -> %s)",
            len(captions),
            len(batches),
            self.source_language,
            self.target_language,
        )
        if self.on_start:
            self.on_start(
                TranslationStarted(caption_count=len(captions), batch_count=len(batches))
            )

        translated_units = await self._run_batches(batches)

        elapsed = time.monotonic() - started
        logger.info("Translation finished in %.2fs", elapsed)
        if self.on_finish:
            self.on_finish(
                TranslationFinished(
                    duration_ms=int(elapsed * 1000),
                    duration_formatted=format_duration(elapsed),
                )
            )

        translations: dict[str, str] = {}
        for unit in translated_units:
            translations.setdefault(unit.id, unit.text)

        result = []
        for caption in captions:
            text = translations.get(caption.id)
            if text is None:
                message = f"Could not find translated caption for ID: {caption.id}"
                logger.warning(message)
                if self.on_error:
                    self.on_error(TranslationError(message=message, caption_id=caption.id))
                result.append(caption.model_copy())
            else:
                result.append(caption.with_text(text))

        return result
