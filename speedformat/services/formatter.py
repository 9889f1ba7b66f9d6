"""
Formatting Engine - Dispatch from language to a concrete formatter.

Prettier runs as a subprocess (the CLI must be on PATH or configured via
PRETTIER_BIN). Rust uses a small built-in re-indenter. Output is
deterministic: the same input always yields the same formatted code.
"""

import asyncio
import re
import time
from typing import Protocol

from structlog import get_logger

from speedformat.config import settings
from speedformat.exceptions import (
    FormattingFailedError,
    FormatterUnavailableError,
    UnsupportedLanguageError,
)
from speedformat.models.api import Language
from speedformat.models.domain import FormatResult
from speedformat.observability.metrics import metrics

logger = get_logger(__name__)


class CodeFormatter(Protocol):
    """A formatter for one language."""

    name: str

    async def format(self, code: str) -> str:
        """Return formatted code or raise FormattingFailedError."""
        ...


# ============================================================================
# Prettier
# ============================================================================

PRETTIER_OPTIONS: tuple[str, ...] = (
    "--single-quote",
    "--trailing-comma",
    "es5",
    "--tab-width",
    "2",
    "--print-width",
    "80",
)


class PrettierFormatter:
    """Formats code by piping it through the prettier CLI."""

    def __init__(
        self,
        parser: str,
        language: Language,
        binary: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.parser = parser
        self.language = language
        self.binary = binary or settings.prettier_bin
        self.timeout = timeout or settings.formatter_timeout_seconds
        self.name = f"prettier ({parser})"

    async def format(self, code: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                "--parser",
                self.parser,
                *PRETTIER_OPTIONS,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.error("prettier_not_runnable", binary=self.binary, error=str(e))
            raise FormatterUnavailableError(self.name, str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(code.encode("utf-8")), timeout=self.timeout
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.error("prettier_timeout", parser=self.parser, timeout_seconds=self.timeout)
            raise FormatterUnavailableError(self.name, "timed out") from None

        if process.returncode != 0:
            message = _first_line(stderr.decode("utf-8", errors="replace"))
            logger.info("prettier_rejected_input", parser=self.parser, error=message)
            raise FormattingFailedError(self.language.value, message)

        return stdout.decode("utf-8")


def _first_line(text: str) -> str:
    for line in text.splitlines():
        line = line.strip()
        if line:
            return line.removeprefix("[error] ")
    return "formatter exited with an error"


# ============================================================================
# Rust
# ============================================================================

_STRING_LITERAL = re.compile(r""""(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])'""")
_COMMA_NO_SPACE = re.compile(r",(?=\S)")
_INDENT = "    "


def _split_strings(line: str) -> list[tuple[str, bool]]:
    """Split a line into (segment, is_string_literal) pieces."""
    parts: list[tuple[str, bool]] = []
    pos = 0
    for match in _STRING_LITERAL.finditer(line):
        if match.start() > pos:
            parts.append((line[pos : match.start()], False))
        parts.append((match.group(0), True))
        pos = match.end()
    if pos < len(line):
        parts.append((line[pos:], False))
    return parts


class RustBasicFormatter:
    """
    Whitespace-level Rust formatter.

    Trims lines, re-indents by brace depth with four spaces, adds a space
    after commas and collapses runs of blank lines. String literals are left
    untouched. Formatting its own output returns it unchanged.
    """

    name = "basic rust formatter"

    async def format(self, code: str) -> str:
        return self.format_sync(code)

    def format_sync(self, code: str) -> str:
        out: list[str] = []
        depth = 0
        blank = False

        for raw in code.strip().splitlines():
            line = raw.strip()
            if not line:
                if not blank and out:
                    out.append("")
                blank = True
                continue
            blank = False

            segments = _split_strings(line)
            line = "".join(
                text if is_string else _COMMA_NO_SPACE.sub(", ", text)
                for text, is_string in segments
            )
            code_only = "".join(text for text, is_string in segments if not is_string)
            opens = code_only.count("{")
            closes = code_only.count("}")

            leading_close = line.startswith("}")
            if leading_close:
                depth = max(depth - 1, 0)

            out.append(_INDENT * depth + line)
            depth = max(depth + opens - closes + (1 if leading_close else 0), 0)

        return "\n".join(out) + "\n" if out else ""


# ============================================================================
# Engine
# ============================================================================


def default_formatters() -> dict[Language, CodeFormatter]:
    return {
        Language.JAVASCRIPT: PrettierFormatter("babel", Language.JAVASCRIPT),
        Language.TYPESCRIPT: PrettierFormatter("typescript", Language.TYPESCRIPT),
        Language.JSON: PrettierFormatter("json", Language.JSON),
        Language.CSS: PrettierFormatter("css", Language.CSS),
        Language.HTML: PrettierFormatter("html", Language.HTML),
        Language.MARKDOWN: PrettierFormatter("markdown", Language.MARKDOWN),
        Language.RUST: RustBasicFormatter(),
    }


class FormattingEngine:
    """Routes a format call to the formatter registered for its language."""

    def __init__(self, formatters: dict[Language, CodeFormatter] | None = None) -> None:
        self.formatters = formatters if formatters is not None else default_formatters()

    async def format(self, code: str, language: Language) -> FormatResult:
        formatter = self.formatters.get(language)
        if formatter is None:
            raise UnsupportedLanguageError(language.value)

        start = time.perf_counter()
        formatted = await formatter.format(code)
        elapsed = time.perf_counter() - start

        metrics.record_format(formatter.name, elapsed)
        return FormatResult(
            formatted_code=formatted,
            formatter_used=formatter.name,
            execution_time_ms=round(elapsed * 1000, 2),
        )


# Process-wide engine
formatting_engine = FormattingEngine()
