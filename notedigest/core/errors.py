"""Rust-style error display for notedigest startup/validation errors,
plus the runtime error taxonomy raised by the schedule engine."""

from __future__ import annotations

import inspect
import linecache
import os
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from notedigest.core.scheduler.manager import SweepReport

# Absolute path to the notedigest package directory.
# Used by _find_user_frame to distinguish library frames from user code.
_NOTEDIGEST_PKG_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class ErrorCode(str, Enum):
    """Error codes for startup/validation errors.

    Organized by category:
    - E001-E099: Schedule validation errors
    - E200-E299: Config/store/CLI errors
    """

    # Schedule validation (E001-E099)
    SCHEDULE_INVALID_ID = 'E001'
    SCHEDULE_INVALID_USER = 'E002'
    SCHEDULE_INVALID_NAME = 'E003'
    SCHEDULE_MISSING_DAYS = 'E004'
    SCHEDULE_MISSING_DAY_OF_MONTH = 'E005'
    SCHEDULE_MISSING_CRON = 'E006'
    SCHEDULE_NO_DELIVERY = 'E007'
    SCHEDULE_INVALID_CHAT_ID = 'E008'
    SCHEDULE_INVALID_CONTENT_DAYS = 'E009'
    SCHEDULE_INVALID_TIMEZONE = 'E010'
    SCHEDULE_DUPLICATE_DAYS = 'E011'

    # Config/store (E200-E299)
    CONFIG_INVALID_MANAGER = 'E200'
    STORE_INVALID_URL = 'E203'
    CONFIG_INVALID_SCHEDULE = 'E205'
    CLI_INVALID_ARGS = 'E206'
    APP_MISSING_COLLABORATOR = 'E207'


# ANSI color codes
class _Colors:
    """ANSI escape codes for terminal colors."""

    RESET = '\033[0m'
    BOLD = '\033[1m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    DIM = '\033[2m'


def _should_use_colors() -> bool:
    """Determine if colors should be used in output."""
    if os.environ.get('NOTEDIGEST_FORCE_COLOR', '').lower() in ('1', 'true', 'yes'):
        return True

    # Check NO_COLOR standard (https://no-color.org/)
    if os.environ.get('NO_COLOR') is not None:
        return False

    return hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()


def _should_show_verbose() -> bool:
    """Determine if verbose output (full traceback) should be shown."""
    return os.environ.get('NOTEDIGEST_VERBOSE', '').lower() in ('1', 'true', 'yes')


def _should_use_plain_errors() -> bool:
    """Determine if plain Python errors should be used instead of Rust-style."""
    return os.environ.get('NOTEDIGEST_PLAIN_ERRORS', '').lower() in (
        '1',
        'true',
        'yes',
    )


@dataclass
class SourceLocation:
    """Source code location information."""

    file: str
    line: int
    column: int | None = None
    end_column: int | None = None

    @classmethod
    def from_frame(cls, frame: Any) -> SourceLocation:
        """Create SourceLocation from a frame object."""
        return cls(
            file=frame.f_code.co_filename,
            line=frame.f_lineno,
        )

    def get_source_line(self) -> str | None:
        """Read the source line from the file."""
        try:
            line = linecache.getline(self.file, self.line)
            return line.rstrip('\n') if line else None
        except Exception:
            return None

    def format_short(self) -> str:
        """Format as 'file:line' or 'file:line:col'."""
        if self.column is not None:
            return f'{self.file}:{self.line}:{self.column}'
        return f'{self.file}:{self.line}'


@dataclass
class NoteDigestError(Exception):
    """Base exception for notedigest startup/validation errors.

    Provides Rust-style error formatting with:
    - Error code and category
    - Source location with code snippet
    - Notes and help text
    """

    message: str
    code: ErrorCode | None = None
    location: SourceLocation | None = None
    notes: list[str] = field(default_factory=lambda: [])
    help_text: str | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

        # Auto-detect location from call stack if not provided
        if self.location is None:
            user_frame = _find_user_frame()
            if user_frame is not None:
                self.location = SourceLocation.from_frame(user_frame)

    def with_note(self, note: str) -> NoteDigestError:
        """Add a note to the error (fluent API)."""
        self.notes.append(note)
        return self

    def with_help(self, help_text: str) -> NoteDigestError:
        """Set help text (fluent API)."""
        self.help_text = help_text
        return self

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        """Format the error in Rust style."""
        if use_colors is None:
            use_colors = _should_use_colors()

        c = _Colors if use_colors else _NoColors
        lines: list[str] = []

        lines.append('')

        # Error header: error[E001]: message
        code_part = f'[{self.code.value}]' if self.code else ''
        lines.append(f'{c.BOLD}{c.RED}error{code_part}:{c.RESET} {self.message}')

        if self.location:
            source_line = self.location.get_source_line()

            lines.append(
                f'  {c.BLUE}-->{c.RESET} {c.CYAN}{self.location.format_short()}{c.RESET}'
            )

            if source_line:
                line_num = str(self.location.line)
                padding = ' ' * len(line_num)

                lines.append(f'   {c.BLUE}{padding}|{c.RESET}')
                lines.append(f'   {c.BLUE}{line_num}|{c.RESET} {source_line}')

                if self.location.column is not None:
                    start_col = self.location.column
                    end_col = self.location.end_column or (start_col + 1)
                    width = max(1, end_col - start_col)
                    underline = ' ' * start_col + '^' * width
                else:
                    stripped = source_line.lstrip()
                    indent = len(source_line) - len(stripped)
                    underline = ' ' * indent + '^' * len(stripped)
                lines.append(
                    f'   {c.BLUE}{padding}|{c.RESET} {c.RED}{underline}{c.RESET}'
                )

        for note in self.notes:
            note_lines = note.split('\n')
            lines.append(
                f'   {c.BLUE}={c.RESET} {c.BOLD}{c.BLUE}note{c.RESET}: {note_lines[0]}'
            )
            for note_line in note_lines[1:]:
                lines.append(f'          {note_line}')

        if self.help_text:
            lines.append('')
            help_lines = self.help_text.split('\n')
            lines.append(f'   {c.BLUE}={c.RESET} {c.BOLD}{c.GREEN}help{c.RESET}:')
            for help_line in help_lines:
                lines.append(f'        {help_line}')

        return '\n'.join(lines)

    def __str__(self) -> str:
        """Plain text (no ANSI colors), safe for logs and storage."""
        return self.format_rust_style(use_colors=False)


class _NoColors:
    """No-op color codes for non-TTY output."""

    RESET = ''
    BOLD = ''
    RED = ''
    BLUE = ''
    CYAN = ''
    GREEN = ''
    YELLOW = ''
    DIM = ''


_original_excepthook = sys.excepthook


def _notedigest_excepthook(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: Any,
) -> None:
    """Custom exception hook for NoteDigestError exceptions."""
    if _should_use_plain_errors():
        _original_excepthook(exc_type, exc_value, exc_tb)
        return

    if isinstance(exc_value, NoteDigestError):
        print(exc_value.format_rust_style(), file=sys.stderr)

        if _should_show_verbose():
            print(file=sys.stderr)
            c = _Colors if _should_use_colors() else _NoColors
            print(
                f'{c.DIM}Full traceback (NOTEDIGEST_VERBOSE=1):{c.RESET}',
                file=sys.stderr,
            )
            traceback.print_exception(exc_type, exc_value, exc_tb, file=sys.stderr)
    else:
        _original_excepthook(exc_type, exc_value, exc_tb)


def install_error_handler() -> None:
    """Install the custom exception hook for Rust-style error display."""
    sys.excepthook = _notedigest_excepthook


def uninstall_error_handler() -> None:
    """Restore the original exception hook."""
    sys.excepthook = _original_excepthook


# =============================================================================
# Specific Error Classes
# =============================================================================


@dataclass
class ConfigurationError(NoteDigestError):
    """Raised when app/store/manager configuration is invalid."""

    pass


@dataclass
class ScheduleValidationError(NoteDigestError):
    """Raised when a schedule fails creation-time validation."""

    pass


# =============================================================================
# Phase-Gated Error Collection
# =============================================================================


class ValidationReport:
    """Collects multiple NoteDigestError instances within a validation phase.

    Formats all collected errors together with a summary line,
    similar to rustc's multi-error output.
    """

    def __init__(self, phase_name: str) -> None:
        self.phase_name: str = phase_name
        self.errors: list[NoteDigestError] = []

    def add(self, error: NoteDigestError) -> None:
        """Append an error to the report."""
        self.errors.append(error)

    def has_errors(self) -> bool:
        """Return True if any errors were collected."""
        return len(self.errors) > 0

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        """Format all collected errors, then append an aborting summary."""
        if use_colors is None:
            use_colors = _should_use_colors()

        c = _Colors if use_colors else _NoColors
        parts: list[str] = []

        for error in self.errors:
            parts.append(error.format_rust_style(use_colors=use_colors))

        count = len(self.errors)
        parts.append(
            f'\n{c.BOLD}{c.RED}error{c.RESET}: aborting due to {count} previous errors'
        )

        return '\n'.join(parts)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


@dataclass
class MultipleValidationErrors(NoteDigestError):
    """Wraps a ValidationReport containing 2+ errors.

    Single errors are raised as their original type so existing
    except clauses keep working.
    """

    report: ValidationReport = field(default_factory=lambda: ValidationReport(''))

    def __post_init__(self) -> None:
        if not self.message:
            count = len(self.report.errors)
            self.message = f'aborting due to {count} previous errors'
        # Skip auto-location detection: location is per-error in the report
        super(NoteDigestError, self).__init__(self.message)

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        """Delegate formatting to the underlying report."""
        return self.report.format_rust_style(use_colors=use_colors)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


def raise_collected(report: ValidationReport) -> None:
    """Raise collected errors.

    - 0 errors: no-op (returns normally)
    - 1 error: raises the original error
    - 2+ errors: raises MultipleValidationErrors wrapping the report
    """
    count = len(report.errors)
    if count == 0:
        return
    if count == 1:
        raise report.errors[0]
    raise MultipleValidationErrors(
        message=f'aborting due to {count} previous errors',
        report=report,
    )


def _find_user_frame() -> Any | None:
    """Find the first frame outside of notedigest internals."""
    frame = inspect.currentframe()
    if frame is None:
        return None

    while frame is not None:
        filename = frame.f_code.co_filename

        # Skip synthetic frames (e.g., <string>, <module>)
        if filename.startswith('<'):
            frame = frame.f_back
            continue

        if (
            not filename.startswith(_NOTEDIGEST_PKG_DIR)
            and '/site-packages/' not in filename
        ):
            return frame

        frame = frame.f_back

    return None


# =============================================================================
# Runtime Errors
# =============================================================================
#
# Raised while schedules are running. Only not-found/denied and store
# failures leave the executor as exceptions; content, summarization and
# delivery failures are recorded on the execution instead.


class ScheduleRuntimeError(Exception):
    """Base class for errors raised by the schedule engine at runtime."""

    retryable: bool = False

    def __init__(self, message: str, *, schedule_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.schedule_id = schedule_id


class ScheduleNotFoundError(ScheduleRuntimeError):
    """Schedule does not exist."""


class ScheduleDeniedError(ScheduleRuntimeError):
    """Schedule exists but belongs to another user."""


class StoreUnavailableError(ScheduleRuntimeError):
    """Backing store is not ready (index building, connection lost)."""

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        schedule_id: str | None = None,
        exception: BaseException | None = None,
    ) -> None:
        super().__init__(message, schedule_id=schedule_id)
        self.operation = operation
        self.exception = exception


class ScheduleAlreadyRunningError(ScheduleRuntimeError):
    """A manual run was requested while the schedule is in flight."""


class ContentFetchError(ScheduleRuntimeError):
    """Content source failed to return items."""


class AuthExpiredError(ContentFetchError):
    """Content source credential expired or was revoked."""


class RateLimitedError(ContentFetchError):
    """Content source throttled the request."""

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        retry_after_seconds: float | None = None,
        schedule_id: str | None = None,
    ) -> None:
        super().__init__(message, schedule_id=schedule_id)
        self.retry_after_seconds = retry_after_seconds


class SummarizationError(ScheduleRuntimeError):
    """Summarizer failed to produce a summary."""


class SweepTimeoutError(ScheduleRuntimeError):
    """The sweep stopped waiting before every execution finished.

    The unfinished executions keep running and stay tracked.
    """

    retryable = True

    def __init__(self, message: str, *, report: SweepReport) -> None:
        super().__init__(message)
        self.report = report
