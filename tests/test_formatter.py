"""
Tests for the formatting engine and its formatters.

Prettier is never actually executed; the subprocess layer is mocked.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from speedformat.exceptions import (
    FormattingFailedError,
    FormatterUnavailableError,
    UnsupportedLanguageError,
)
from speedformat.models.api import Language
from speedformat.services.formatter import (
    FormattingEngine,
    PrettierFormatter,
    RustBasicFormatter,
    default_formatters,
)


def _process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.returncode = returncode
    process.kill = MagicMock()
    process.wait = AsyncMock()
    return process


class TestRustBasicFormatter:
    """Tests for RustBasicFormatter."""

    def test_reindents_by_brace_depth(self):
        code = "fn main(){\nlet x=1;\nif x>0{\nprintln!(\"hi\");\n}\n}"
        assert RustBasicFormatter().format_sync(code) == (
            "fn main(){\n"
            "    let x=1;\n"
            "    if x>0{\n"
            '        println!("hi");\n'
            "    }\n"
            "}\n"
        )

    def test_space_after_comma(self):
        assert RustBasicFormatter().format_sync("foo(a,b,c);") == "foo(a, b, c);\n"

    def test_commas_inside_strings_untouched(self):
        code = 'let s = "a,b";\nlet c = \',\';'
        assert RustBasicFormatter().format_sync(code) == 'let s = "a,b";\nlet c = \',\';\n'

    def test_collapses_blank_runs(self):
        assert RustBasicFormatter().format_sync("a;\n\n\n\nb;") == "a;\n\nb;\n"

    def test_empty_input(self):
        assert RustBasicFormatter().format_sync("   \n  ") == ""

    def test_unbalanced_close_never_negative(self):
        assert RustBasicFormatter().format_sync("}\n}\nx;") == "}\n}\nx;\n"

    @pytest.mark.asyncio
    async def test_async_entry_point(self):
        assert await RustBasicFormatter().format("x;") == "x;\n"


class TestPrettierFormatter:
    """Tests for PrettierFormatter."""

    @pytest.mark.asyncio
    async def test_success_passes_parser_and_options(self):
        process = _process(stdout=b"const a = 1;\n")
        with patch(
            "speedformat.services.formatter.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=process),
        ) as spawn:
            result = await PrettierFormatter("babel", Language.JAVASCRIPT).format("const a=1")

        assert result == "const a = 1;\n"
        args = spawn.call_args.args
        assert args[0] == "prettier"
        assert args[1:3] == ("--parser", "babel")
        assert "--single-quote" in args
        process.communicate.assert_awaited_once_with(b"const a=1")

    @pytest.mark.asyncio
    async def test_syntax_error_is_formatting_failure(self):
        process = _process(stderr=b"[error] stdin: SyntaxError: Unexpected token (1:5)\n", returncode=2)
        with patch(
            "speedformat.services.formatter.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=process),
        ):
            with pytest.raises(FormattingFailedError) as exc_info:
                await PrettierFormatter("json", Language.JSON).format("{,}")

        assert exc_info.value.message == "stdin: SyntaxError: Unexpected token (1:5)"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_binary_is_unavailable(self):
        with patch(
            "speedformat.services.formatter.asyncio.create_subprocess_exec",
            new=AsyncMock(side_effect=FileNotFoundError("prettier")),
        ):
            with pytest.raises(FormatterUnavailableError):
                await PrettierFormatter("css", Language.CSS).format("a{}")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        process = _process()

        async def _hang(data):
            await asyncio.sleep(10)

        process.communicate = AsyncMock(side_effect=_hang)
        with patch(
            "speedformat.services.formatter.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=process),
        ):
            with pytest.raises(FormatterUnavailableError):
                await PrettierFormatter("html", Language.HTML, timeout=0.01).format("<p>")

        process.kill.assert_called_once()

    def test_names(self):
        assert PrettierFormatter("typescript", Language.TYPESCRIPT).name == "prettier (typescript)"


class TestFormattingEngine:
    """Tests for FormattingEngine."""

    def test_every_language_has_a_formatter(self):
        assert set(default_formatters()) == set(Language)

    @pytest.mark.asyncio
    async def test_dispatch_and_timing(self):
        engine = FormattingEngine({Language.RUST: RustBasicFormatter()})

        result = await engine.format("fn a(x,y){}", Language.RUST)

        assert result.formatted_code == "fn a(x, y){}\n"
        assert result.formatter_used == "basic rust formatter"
        assert result.output_length == len(result.formatted_code)
        assert result.execution_time_ms >= 0

    @pytest.mark.asyncio
    async def test_unsupported_language(self):
        with pytest.raises(UnsupportedLanguageError):
            await FormattingEngine({}).format("x", Language.MARKDOWN)
