"""CLI entry point for subtranslate."""

import asyncio
import logging
import os
import sys
from pathlib import Path

import click

from .backends import BACKEND_KINDS, backend_settings, create_backend
from .config import Config
from .errors import SubtranslateError
from .languages import get_language_name, is_known_language
from .models import Caption, TranslationError, TranslationFinished, TranslationStarted
from .srt import read_srt, write_srt
from .translate import BatchTranslator

MAX_BATCH_SIZE = 1000
MAX_CONCURRENCY = 50

LINE_ENDINGS = {
    "lf": "\n",
    "crlf": "\r\n",
    "native": os.linesep,
}


def default_output_path(input_path: Path, target_lang: str) -> Path:
    """Output next to the input: movie.srt -> movie.<target>.srt"""
    return input_path.with_name(f"{input_path.stem}.{target_lang}.srt")


@click.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--from",
    "source_lang",
    default=None,
    help="Source language code (e.g., en, ja). Default: SUBTRANSLATE_SOURCE_LANGUAGE or en",
)
@click.option(
    "--to",
    "target_lang",
    default=None,
    help="Target language code (e.g., nl, fr). Default: SUBTRANSLATE_TARGET_LANGUAGE or nl",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    help="Output SRT file path (default: input_name.{target}.srt)",
)
@click.option(
    "--llm",
    type=click.Choice(BACKEND_KINDS),
    default="openai",
    help="LLM provider for translation",
)
@click.option(
    "--model",
    default=None,
    help="Model name for the selected provider (provider default if omitted)",
)
@click.option(
    "--batch-size",
    type=click.IntRange(1, MAX_BATCH_SIZE),
    default=None,
    help="Captions per request. Default: SUBTRANSLATE_BATCH_SIZE or 500",
)
@click.option(
    "--concurrency",
    type=click.IntRange(1, MAX_CONCURRENCY),
    default=None,
    help="Maximum parallel requests. Default: SUBTRANSLATE_CONCURRENCY or 10",
)
@click.option(
    "--max-retries",
    type=click.IntRange(0),
    default=None,
    help="Retry rounds for captions the LLM leaves out (default: until complete)",
)
@click.option(
    "--eol",
    type=click.Choice(list(LINE_ENDINGS)),
    default="native",
    help="Line endings of the written file",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(
    input_path: str,
    source_lang: str | None,
    target_lang: str | None,
    output: str | None,
    llm: str,
    model: str | None,
    batch_size: int | None,
    concurrency: int | None,
    max_retries: int | None,
    eol: str,
    verbose: bool,
) -> None:
    """Translate an SRT subtitle file into another language.

    \b
    Examples:
      subtranslate movie.srt --from en --to nl
      subtranslate movie.srt --to fr --llm ollama --model llama3.1:8b
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = Config.from_env()
        settings = backend_settings(llm, model)
        backend = create_backend(settings, config)
    except SubtranslateError as e:
        raise click.ClickException(str(e))

    source_lang = source_lang or config.source_language
    target_lang = target_lang or config.target_language
    batch_size = batch_size or config.batch_size
    concurrency = concurrency or config.concurrency
    if not 1 <= batch_size <= MAX_BATCH_SIZE:
        raise click.ClickException(f"Batch size must be between 1 and {MAX_BATCH_SIZE}")
    if not 1 <= concurrency <= MAX_CONCURRENCY:
        raise click.ClickException(f"Concurrency must be between 1 and {MAX_CONCURRENCY}")

    for code in (source_lang, target_lang):
        if not is_known_language(code):
            click.secho(
                f"Warning: unknown language code '{code}', passing it to the LLM as is",
                fg="yellow",
                err=True,
            )

    input_p = Path(input_path)
    output_p = Path(output) if output else default_output_path(input_p, target_lang)

    click.echo(f"Subtitles: {input_path}")
    click.echo(
        f"Translation: {get_language_name(source_lang)} → {get_language_name(target_lang)}"
    )
    click.echo(f"LLM: {settings.kind} ({settings.model})")
    click.echo(f"Output: {output_p}")
    click.echo()

    try:
        captions = read_srt(input_p)
    except UnicodeDecodeError as e:
        raise click.ClickException(f"Could not read {input_path} as UTF-8: {e}")
    if not captions:
        raise click.ClickException(f"No captions found in {input_path}")

    def on_start(event: TranslationStarted) -> None:
        click.echo(
            f"Translating {event.caption_count} captions in {event.batch_count} batches..."
        )

    def on_finish(event: TranslationFinished) -> None:
        click.echo(f"  Translation completed in {event.duration_formatted}")

    def on_error(event: TranslationError) -> None:
        click.secho(f"  Warning: {event.message}", fg="yellow", err=True)

    translator = BatchTranslator(
        backend,
        batch_size=batch_size,
        max_concurrency=concurrency,
        source_language=source_lang,
        target_language=target_lang,
        max_retries=max_retries,
        on_start=on_start,
        on_finish=on_finish,
        on_error=on_error,
    )

    async def run() -> list[Caption]:
        try:
            return await translator.translate(captions)
        finally:
            aclose = getattr(backend, "aclose", None)
            if aclose is not None:
                await aclose()

    try:
        translated = asyncio.run(run())

        click.echo("Writing translated subtitles...")
        write_srt(translated, output_p, eol=LINE_ENDINGS[eol])
        click.echo(f"  Saved to {output_p}")

        click.echo()
        click.secho("Done!", fg="green", bold=True)

    except Exception as e:
        logging.getLogger(__name__).debug("Translation failed", exc_info=True)
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
