"""SRT subtitle file parsing and generation."""

import os
import re
from pathlib import Path

from .models import Caption

# Cue header: index line followed by "start --> end". The first pattern
# expects comma milliseconds, the fallback accepts periods.
COMMA_CUE_PATTERN = re.compile(
    r"(\d+)[ \t]*\n(\d{1,2}:\d{1,2}:\d{1,2},\d{1,3})[ \t]*-->[ \t]*(\d{1,2}:\d{1,2}:\d{1,2},\d{1,3})"
)
PERIOD_CUE_PATTERN = re.compile(
    r"(\d+)[ \t]*\n(\d{1,2}:\d{1,2}:\d{1,2}\.\d{1,3})[ \t]*-->[ \t]*(\d{1,2}:\d{1,2}:\d{1,2}\.\d{1,3})"
)


def _fixed_width(value: str, width: int, pad_end: bool = True) -> str:
    """Truncate or zero-pad a timestamp field to exactly ``width`` characters."""
    if len(value) >= width:
        return value[:width]
    if pad_end:
        return value.ljust(width, "0")
    return value.rjust(width, "0")


def correct_timestamp(timestamp: str) -> str:
    """Canonicalize a timestamp to "HH:MM:SS,mmm".

    Periods become commas, milliseconds are right-padded or truncated to
    three digits and each clock field is left-padded or truncated to two.

    Args:
        timestamp: Timestamp such as "1:2:3.4" or "00:01:02,500"

    Returns:
        Canonical timestamp, e.g. "01:02:03,400"
    """
    main_time, _, millis = timestamp.strip().replace(".", ",", 1).partition(",")
    fields = (main_time.split(":") + ["", "", ""])[:3]
    hours, minutes, seconds = (_fixed_width(f, 2, pad_end=False) for f in fields)
    return f"{hours}:{minutes}:{seconds},{_fixed_width(millis, 3)}"


def timestamp_to_seconds(timestamp: str) -> float:
    """Convert a canonical SRT timestamp to seconds.

    Args:
        timestamp: SRT timestamp format "HH:MM:SS,mmm"

    Returns:
        Time in seconds, rounded to three decimals
    """
    main_time, _, millis = timestamp.partition(",")
    hours, minutes, seconds = (int(part) for part in main_time.split(":"))
    total = hours * 3600 + minutes * 60 + seconds + int(millis) / 1000
    return round(total, 3)


def _split_cues(content: str, pattern: re.Pattern) -> list[str]:
    # re.split keeps the captured groups: [preamble, id, start, end, body, id, ...]
    return pattern.split(content)[1:]


def parse_srt(content: str) -> list[Caption]:
    """Parse SRT content into Caption objects.

    Unrecognizable input yields an empty list rather than an exception.

    Args:
        content: Raw SRT file content

    Returns:
        List of Caption objects in document order
    """
    content = content.replace("\r", "").lstrip("\ufeff")

    tokens = _split_cues(content, COMMA_CUE_PATTERN)
    if not tokens:
        tokens = _split_cues(content, PERIOD_CUE_PATTERN)
    if not tokens:
        return []

    captions = []
    for i in range(0, len(tokens) - 3, 4):
        start_time = correct_timestamp(tokens[i + 1])
        end_time = correct_timestamp(tokens[i + 2])
        captions.append(
            Caption(
                id=tokens[i].strip(),
                start_time=start_time,
                end_time=end_time,
                start_seconds=timestamp_to_seconds(start_time),
                end_seconds=timestamp_to_seconds(end_time),
                text=tokens[i + 3].strip(),
            )
        )

    return captions


def stringify_srt(captions: list[Caption], eol: str = os.linesep) -> str:
    """Convert captions to SRT format string.

    Ids are written exactly as stored, never renumbered.

    Args:
        captions: List of Caption objects
        eol: Line terminator, the platform convention by default

    Returns:
        SRT formatted string
    """
    blocks = []
    for caption in captions:
        # Backends may hand back \r\n or bare \r inside translated text
        text = caption.text.replace("\r\n", "\n").replace("\r", "\n").replace("\n", eol)
        blocks.append(
            f"{caption.id}{eol}{caption.start_time} --> {caption.end_time}{eol}{text}{eol}{eol}"
        )
    return "".join(blocks)


def read_srt(path: str | Path) -> list[Caption]:
    """Read and parse an SRT file.

    Args:
        path: Path to the SRT file

    Returns:
        List of Caption objects
    """
    path = Path(path)
    content = path.read_text(encoding="utf-8")
    return parse_srt(content)


def write_srt(captions: list[Caption], path: str | Path, eol: str = os.linesep) -> None:
    """Write captions to an SRT file.

    Args:
        captions: List of Caption objects
        path: Output file path
        eol: Line terminator written between lines
    """
    path = Path(path)
    with path.open("w", encoding="utf-8", newline="") as f:
        f.write(stringify_srt(captions, eol=eol))
