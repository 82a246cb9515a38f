import pytest

from subtranslate.models import Caption
from subtranslate.srt import (
    correct_timestamp,
    parse_srt,
    read_srt,
    stringify_srt,
    timestamp_to_seconds,
    write_srt,
)

SAMPLE = """1
00:00:01,000 --> 00:00:02,000
Hello

2
00:00:03,500 --> 00:00:05,250
How are you?
I'm fine.

3
00:01:10,001 --> 00:01:12,999
  Bye
"""


def test_parse_basic_document():
    captions = parse_srt(SAMPLE)

    assert [c.id for c in captions] == ["1", "2", "3"]
    assert captions[0].start_time == "00:00:01,000"
    assert captions[0].end_time == "00:00:02,000"
    assert captions[0].start_seconds == 1.0
    assert captions[0].end_seconds == 2.0
    assert captions[0].text == "Hello"
    assert captions[1].text == "How are you?\nI'm fine."
    assert captions[1].end_seconds == 5.25
    assert captions[2].start_seconds == 70.001
    assert captions[2].text == "Bye"


def test_parse_strips_carriage_returns():
    assert parse_srt(SAMPLE.replace("\n", "\r\n")) == parse_srt(SAMPLE)


def test_parse_tolerates_byte_order_mark():
    assert parse_srt("\ufeff" + SAMPLE) == parse_srt(SAMPLE)


def test_period_timestamps_match_comma_timestamps():
    with_periods = SAMPLE.replace(",", ".")

    comma = parse_srt(SAMPLE)
    period = parse_srt(with_periods)

    assert len(period) == len(comma) == 3
    for a, b in zip(comma, period):
        assert a.start_seconds == b.start_seconds
        assert a.end_seconds == b.end_seconds
        assert a.start_time == b.start_time
        assert a.end_time == b.end_time


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("00:00:01,000", "00:00:01,000"),
        ("1:2:3.4", "01:02:03,400"),
        ("1:02:03,4", "01:02:03,400"),
        ("00:00:01.25", "00:00:01,250"),
        ("00:00:01,12345", "00:00:01,123"),
        ("123:00:01,000", "12:00:01,000"),
        ("00:00:07", "00:00:07,000"),
    ],
)
def test_correct_timestamp(raw, expected):
    assert correct_timestamp(raw) == expected


def test_timestamp_to_seconds_rounds_to_milliseconds():
    assert timestamp_to_seconds("01:02:03,400") == 3723.4
    assert timestamp_to_seconds("00:00:00,001") == 0.001
    assert timestamp_to_seconds("10:00:00,000") == 36000.0


def test_parse_canonicalizes_short_fields():
    captions = parse_srt("7\n1:02:03.4 --> 1:02:04.25\nShort fields\n")

    assert len(captions) == 1
    assert captions[0].id == "7"
    assert captions[0].start_time == "01:02:03,400"
    assert captions[0].end_time == "01:02:04,250"
    assert captions[0].start_seconds == 3723.4
    assert captions[0].end_seconds == 3724.25


@pytest.mark.parametrize("content", ["", "just some text", "WEBVTT\n\n00:01.000 --> 00:02.000\nHi\n"])
def test_unrecognized_input_returns_empty_list(content):
    assert parse_srt(content) == []


def test_parse_passes_through_inverted_timings():
    captions = parse_srt("1\n00:00:05,000 --> 00:00:01,000\nBackwards\n")

    assert captions[0].start_seconds == 5.0
    assert captions[0].end_seconds == 1.0


def test_stringify_uses_configured_line_ending():
    captions = parse_srt(SAMPLE)

    text = stringify_srt(captions[:2], eol="\r\n")

    assert text == (
        "1\r\n00:00:01,000 --> 00:00:02,000\r\nHello\r\n\r\n"
        "2\r\n00:00:03,500 --> 00:00:05,250\r\nHow are you?\r\nI'm fine.\r\n\r\n"
    )


@pytest.mark.parametrize("eol", ["\n", "\r\n"])
@pytest.mark.parametrize("text", ["a\r\nb", "a\rb", "a\nb"])
def test_stringify_normalizes_line_breaks_in_text(text, eol):
    caption = parse_srt(SAMPLE)[0].with_text(text)

    output = stringify_srt([caption], eol=eol)

    assert output == f"1{eol}00:00:01,000 --> 00:00:02,000{eol}a{eol}b{eol}{eol}"
    assert "\r\r\n" not in output


def test_stringify_keeps_ids_verbatim():
    captions = [
        Caption(
            id="10",
            start_time="00:00:01,000",
            end_time="00:00:02,000",
            start_seconds=1.0,
            end_seconds=2.0,
            text="a",
        ),
        Caption(
            id="4",
            start_time="00:00:03,000",
            end_time="00:00:04,000",
            start_seconds=3.0,
            end_seconds=4.0,
            text="b",
        ),
    ]

    text = stringify_srt(captions, eol="\n")

    assert text.startswith("10\n")
    assert "\n\n4\n" in text


@pytest.mark.parametrize("eol", ["\n", "\r\n"])
def test_round_trip(eol):
    captions = parse_srt(SAMPLE)

    again = parse_srt(stringify_srt(captions, eol=eol))

    assert again == captions


def test_write_and_read_file(tmp_path):
    path = tmp_path / "movie.srt"
    captions = parse_srt(SAMPLE)

    write_srt(captions, path, eol="\r\n")

    assert b"\r\n" in path.read_bytes()
    assert read_srt(path) == captions
