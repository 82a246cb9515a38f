import pytest
from click.testing import CliRunner

from subtranslate.cli import default_output_path, main
from subtranslate.errors import BackendError
from subtranslate.models import TranslationUnit

SAMPLE = """1
00:00:01,000 --> 00:00:02,000
Hello

2
00:00:03,000 --> 00:00:04,000
Good night
"""


class DictionaryBackend:
    words = {"Hello": "Hallo", "Good night": "Welterusten"}

    async def translate(self, units, source_language, target_language):
        return [TranslationUnit(id=u.id, text=self.words[u.text]) for u in units]


class FailingBackend:
    async def translate(self, units, source_language, target_language):
        raise BackendError("429 Too Many Requests")


class ClosingBackend(DictionaryBackend):
    def __init__(self, fail=False):
        self.fail = fail
        self.closed = False

    async def translate(self, units, source_language, target_language):
        if self.fail:
            raise BackendError("503 Service Unavailable")
        return await super().translate(units, source_language, target_language)

    async def aclose(self):
        self.closed = True


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr("subtranslate.config.load_dotenv", lambda: None)
    for name in ["OPENAI_API_KEY", "SUBTRANSLATE_BATCH_SIZE", "SUBTRANSLATE_CONCURRENCY"]:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def srt_file(tmp_path):
    path = tmp_path / "movie.srt"
    path.write_text(SAMPLE, encoding="utf-8")
    return path


def use_backend(monkeypatch, backend):
    monkeypatch.setattr("subtranslate.cli.create_backend", lambda settings, config: backend)


def test_translates_file(monkeypatch, srt_file):
    use_backend(monkeypatch, DictionaryBackend())

    result = CliRunner().invoke(
        main, [str(srt_file), "--from", "en", "--to", "nl", "--eol", "lf", "--batch-size", "1"]
    )

    assert result.exit_code == 0, result.output
    assert "Translating 2 captions in 2 batches" in result.output
    assert "Done!" in result.output
    output = srt_file.with_name("movie.nl.srt")
    assert output.read_text(encoding="utf-8") == (
        "1\n00:00:01,000 --> 00:00:02,000\nHallo\n\n"
        "2\n00:00:03,000 --> 00:00:04,000\nWelterusten\n\n"
    )


def test_custom_output_path(monkeypatch, srt_file, tmp_path):
    use_backend(monkeypatch, DictionaryBackend())
    output = tmp_path / "out.srt"

    result = CliRunner().invoke(main, [str(srt_file), "--to", "de", "-o", str(output)])

    assert result.exit_code == 0, result.output
    assert output.exists()
    assert "Hallo" in output.read_text(encoding="utf-8")


def test_no_captions_found(monkeypatch, tmp_path):
    use_backend(monkeypatch, DictionaryBackend())
    empty = tmp_path / "empty.srt"
    empty.write_text("not a subtitle", encoding="utf-8")

    result = CliRunner().invoke(main, [str(empty), "--to", "nl"])

    assert result.exit_code == 1
    assert "No captions found" in result.output


def test_backend_failure_exits_with_error(monkeypatch, srt_file):
    use_backend(monkeypatch, FailingBackend())

    result = CliRunner().invoke(main, [str(srt_file), "--to", "nl"])

    assert result.exit_code == 1
    assert "Error: 429 Too Many Requests" in result.output
    assert not srt_file.with_name("movie.nl.srt").exists()


def test_missing_api_key(srt_file):
    result = CliRunner().invoke(main, [str(srt_file), "--to", "nl", "--llm", "openai"])

    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_batch_size_out_of_range(monkeypatch, srt_file):
    use_backend(monkeypatch, DictionaryBackend())

    result = CliRunner().invoke(main, [str(srt_file), "--batch-size", "0"])

    assert result.exit_code == 2


def test_default_output_path(tmp_path):
    assert default_output_path(tmp_path / "show.s01e01.srt", "fr") == tmp_path / "show.s01e01.fr.srt"


@pytest.mark.parametrize("fail, exit_code", [(False, 0), (True, 1)])
def test_backend_is_closed_after_run(monkeypatch, srt_file, fail, exit_code):
    backend = ClosingBackend(fail=fail)
    use_backend(monkeypatch, backend)

    result = CliRunner().invoke(main, [str(srt_file), "--to", "nl"])

    assert result.exit_code == exit_code, result.output
    assert backend.closed


def test_warns_about_unknown_language_code(monkeypatch, srt_file):
    use_backend(monkeypatch, DictionaryBackend())

    result = CliRunner().invoke(main, [str(srt_file), "--from", "en", "--to", "tlh"])

    assert result.exit_code == 0, result.output
    assert "unknown language code 'tlh'" in result.output
    assert "unknown language code 'en'" not in result.output
