"""
Exception hierarchy for live-harness.

Protocol errors and stream errors carry enough context to be read
straight from a failing test report. Expectation and artifact mismatches
also subclass ``AssertionError`` so pytest reports them as failures
rather than errors.
"""

from __future__ import annotations

from collections.abc import Iterable


class HarnessError(Exception):
    """Base class for every error raised by the harness."""


class UnexpectedStatusError(HarnessError):
    """An HTTP control call answered with a status code other than expected."""

    def __init__(
        self,
        method: str,
        url: str,
        expected: int,
        actual: int,
        body: str = "",
    ) -> None:
        self.method = method
        self.url = url
        self.expected = expected
        self.actual = actual
        self.body = body
        message = f"{method} {url}: expected status {expected}, got {actual}"
        if body:
            message += f" ({body[:500]})"
        super().__init__(message)


class StreamError(HarnessError):
    """The encoder process failed on its own.

    Attributes:
        returncode: Exit status (negative for a signal), ``None`` when the
            process could not be spawned.
        stderr_tail: The last lines the encoder wrote to stderr.
    """

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        stderr_tail: Iterable[str] = (),
    ) -> None:
        self.returncode = returncode
        self.stderr_tail = list(stderr_tail)
        super().__init__(message)


class StreamExpectationError(HarnessError, AssertionError):
    """The encoder was expected to fail within its window but did not."""


class ArtifactMismatchError(HarnessError, AssertionError):
    """The streaming output directory does not hold the expected files."""

    def __init__(
        self,
        message: str,
        *,
        expected: Iterable[str] = (),
        actual: Iterable[str] = (),
    ) -> None:
        self.expected = sorted(expected)
        self.actual = sorted(actual)
        missing = sorted(set(self.expected) - set(self.actual))
        unexpected = sorted(set(self.actual) - set(self.expected))
        if missing or unexpected:
            message += f" (missing: {missing}, unexpected: {unexpected})"
        super().__init__(message)
