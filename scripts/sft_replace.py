#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = ["fastmcp", "pydantic>=2.0.0"]
# ///
"""Exact-string search and replace across files, with structured JSON results.

No regex, no globs. Four matching modes (exact, case-insensitive, whole-word, both),
multi-line patterns, exclude filters, dry runs, atomic writes.

Usage:
    sft_replace.py replace <search> <replace> [-d DIR] [-f FILE] [-x EXT] [-e EXCLUDE]
                           [-i] [-w] [-r] [-n] [-v]
    sft_replace.py dry <search> <replace> [same options]
    sft_replace.py mcp-stdio

Examples:
    sft_replace.py dry oldName newName -d src -x .py -w
    sft_replace.py replace "TODO(bob)" "TODO(alice)" -d src,tests -r
    sft_replace.py replace "line1
    line2" combined -f notes.txt

Exit codes: 0 = replacements made, 2 = no matches, 1 = error.
"""

import contextlib
import functools
import os
import stat
import sys
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# LOGGING
# =============================================================================
_LEVELS = {"TRACE": 5, "DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "FATAL": 50}
_THRESHOLD = _LEVELS.get(os.environ.get("SFB_LOG_LEVEL", "INFO"), 20)
_LOG_DIR = os.environ.get("SFB_LOG_DIR", "")
_SCRIPT = Path(__file__).stem
_LOG = (
    Path(_LOG_DIR) / f"{_SCRIPT}_log.tsv"
    if _LOG_DIR
    else Path(__file__).parent / f"{_SCRIPT}_log.tsv"
)
_HEADER = "#timestamp\tscript\tlevel\tevent\tmessage\tdetail\tmetrics\ttrace\n"


def _log(
    level: str,
    event: str,
    msg: str,
    *,
    detail: str = "",
    metrics: str = "",
    trace: str = "",
):
    """Append TSV log line. Logging never crashes the main flow."""
    if _LEVELS.get(level, 20) < _THRESHOLD:
        return
    try:
        ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        write_header = not _LOG.exists()
        with open(_LOG, "a") as f:
            if write_header:
                f.write(_HEADER)
            f.write(f"{ts}\t{_SCRIPT}\t{level}\t{event}\t{msg}\t{detail}\t{metrics}\t{trace}\n")
    except Exception:
        pass


def _report(msg: str):
    """Print to stderr (keeps stdout clean for the JSON result)."""
    print(msg, file=sys.stderr)


def _warn(msg: str):
    _log("WARN", "warn", msg)
    _report(f"Warning: {msg}")


# =============================================================================
# CONFIGURATION
# =============================================================================
EXPOSED = ["replace", "dry"]  # CLI; MCP exposes replace only (dry_run argument)

CONFIG = {
    "server_name": "replace",
    "version": "1.0.0",
}

MAX_LINE_BYTES = 10 * 1024 * 1024
SNIFF_BYTES = 8192
DEFAULT_FILE_MODE = 0o644
TEMP_PREFIX = ".sft_replace-"
TEMP_SUFFIX = ".tmp"
FILES_GROUP = "(files)"
ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"

EXIT_CHANGED = 0
EXIT_ERROR = 1
EXIT_NO_MATCHES = 2


class ReplaceError(Exception):
    """Base error for replacement failures."""


class ConfigError(ReplaceError):
    """Invalid or missing parameters. Raised before any filesystem access."""


class LineTooLongError(ReplaceError):
    """A line exceeds MAX_LINE_BYTES. The file is skipped."""


class TraversalError(ReplaceError):
    """A directory could not be listed. Aborts the whole operation."""


# =============================================================================
# MODELS
# =============================================================================
class ReplaceRequest(BaseModel):
    """Parameters of one replacement operation. Built once at the CLI/MCP boundary."""

    model_config = ConfigDict(frozen=True)

    directories: tuple[str, ...] = Field((".",), description="Directories to scan")
    files: tuple[str, ...] = Field((), description="Explicit files; wins over directories")
    search: str = Field(..., min_length=1, description="Literal text to find")
    replace: str = Field(..., description="Replacement text (empty string deletes)")
    extension: str = Field("", description="Only filenames ending with this suffix")
    exclude: tuple[str, ...] = Field((), description="Skip matches on lines containing any of these")
    case_insensitive: bool = False
    whole_word: bool = False
    dry_run: bool = False
    recursive: bool = False
    verbose: bool = False

    @field_validator("directories")
    @classmethod
    def _default_directories(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return value or (".",)

    @field_validator("exclude")
    @classmethod
    def _drop_empty_excludes(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(v for v in value if v)


class FileOutcome(BaseModel):
    path: str
    lines_changed: int = 0
    replacements: int = 0


class DirectoryOutcome(BaseModel):
    directory: str = Field(..., serialization_alias="dir")
    files_modified: int = 0
    lines_changed: int = 0
    total_replacements: int = 0
    files: list[FileOutcome] = Field(default_factory=list)

    def record(self, path: str, lines_changed: int, replacements: int):
        """Fold one file's counts in. Files without changed lines stay invisible."""
        if lines_changed <= 0:
            return
        self.files.append(FileOutcome(path=path, lines_changed=lines_changed, replacements=replacements))
        self.files_modified += 1
        self.lines_changed += lines_changed
        self.total_replacements += replacements


class OperationResult(BaseModel):
    summary: str
    directories: list[DirectoryOutcome]
    dry_run: bool = False

    @property
    def total_replacements(self) -> int:
        return sum(d.total_replacements for d in self.directories)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# =============================================================================
# CORE FUNCTIONS
# =============================================================================
# --- Word boundaries ---


def _is_word_char(ch: str) -> bool:
    """ASCII letters, digits and underscore. Every other character is a boundary."""
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ("0" <= ch <= "9") or ch == "_"


def _at_boundary(text: str, start: int, end: int) -> bool:
    before_ok = start == 0 or not _is_word_char(text[start - 1])
    after_ok = end >= len(text) or not _is_word_char(text[end])
    return before_ok and after_ok


@functools.lru_cache(maxsize=4096)
def _fold_char(ch: str) -> str:
    lowered = ch.lower()
    return lowered if len(lowered) == 1 else ch


def _fold(text: str) -> str:
    """Simple lowercase that keeps every offset aligned with the original text.

    Folds one character at a time, so context rules such as the Greek final sigma
    never apply. Characters whose lowercase form is longer are left as they are.
    """
    return "".join(map(_fold_char, text))


def _iter_whole_words(text: str, word: str, *, fold: bool = False):
    """Yield start offsets of whole-word occurrences of word, left to right.

    A rejected candidate advances the scan by one character; an accepted one
    resumes after the match, so yielded spans never overlap.
    """
    if not word:
        return
    haystack = _fold(text) if fold else text
    needle = _fold(word) if fold else word
    start = 0
    while (idx := haystack.find(needle, start)) != -1:
        end = idx + len(needle)
        if _at_boundary(text, idx, end):
            yield idx
            start = end
        else:
            start = idx + 1


def _contains_whole_word(text: str, word: str, *, fold: bool = False) -> bool:
    return next(_iter_whole_words(text, word, fold=fold), None) is not None


# --- Line strategies ---


def _replace_exact(line: str, search: str, replace: str) -> str:
    return line.replace(search, replace)


def _replace_folded(line: str, search: str, replace: str) -> str:
    haystack = _fold(line)
    needle = _fold(search)
    parts: list[str] = []
    pos = 0
    while (idx := haystack.find(needle, pos)) != -1:
        parts.append(line[pos:idx])
        parts.append(replace)
        pos = idx + len(needle)
    parts.append(line[pos:])
    return "".join(parts)


def _replace_words(line: str, search: str, replace: str, fold: bool) -> str:
    parts: list[str] = []
    pos = 0
    for idx in _iter_whole_words(line, search, fold=fold):
        parts.append(line[pos:idx])
        parts.append(replace)
        pos = idx + len(search)
    parts.append(line[pos:])
    return "".join(parts)


def _replace_whole_word(line: str, search: str, replace: str) -> str:
    return _replace_words(line, search, replace, fold=False)


def _replace_folded_whole_word(line: str, search: str, replace: str) -> str:
    return _replace_words(line, search, replace, fold=True)


# (case_insensitive, whole_word) -> strategy
_LINE_STRATEGIES = {
    (False, False): _replace_exact,
    (True, False): _replace_folded,
    (False, True): _replace_whole_word,
    (True, True): _replace_folded_whole_word,
}


def _replace_in_line(
    line: str,
    search: str,
    replace: str,
    case_insensitive: bool = False,
    whole_word: bool = False,
) -> str:
    """Replace every match of search in one line. Inserted text is never rescanned."""
    if not search:
        return line
    return _LINE_STRATEGIES[(case_insensitive, whole_word)](line, search, replace)


def _count_replacements(
    line: str,
    search: str,
    case_insensitive: bool = False,
    whole_word: bool = False,
) -> int:
    """Number of substitutions _replace_in_line performs for the same arguments."""
    if not search:
        return 0
    if whole_word:
        return sum(1 for _ in _iter_whole_words(line, search, fold=case_insensitive))
    if case_insensitive:
        return _fold(line).count(_fold(search))
    return line.count(search)


# --- Multi-line ---


def _is_multiline(search: str, replace: str) -> bool:
    return "\n" in search or "\n" in replace


def _to_crlf(pattern: str) -> str:
    return pattern.replace("\r\n", "\n").replace("\n", "\r\n")


def _replace_content_multiline(
    content: str,
    search: str,
    replace: str,
    case_insensitive: bool = False,
    whole_word: bool = False,
    exclude: tuple[str, ...] | list[str] = (),
) -> tuple[str, int, int]:
    """Replace across the whole content, where one match may span line breaks.

    Returns (new_content, replacements, affected_lines). affected_lines counts the
    distinct original lines touched by performed replacements. A match is excluded
    when any line it overlaps contains an exclude pattern.
    """
    if not search:
        return content, 0, 0

    haystack = _fold(content) if case_insensitive else content
    needle = _fold(search) if case_insensitive else search
    excludes = [_fold(e) if case_insensitive else e for e in exclude]

    parts: list[str] = []
    affected: set[int] = set()
    replacements = 0
    pos = 0  # copied up to here
    start = 0  # next scan offset
    line_no = 0  # newlines in content[:counted]
    counted = 0

    while (idx := haystack.find(needle, start)) != -1:
        end = idx + len(needle)

        if whole_word and not _at_boundary(content, idx, end):
            start = idx + 1
            continue

        if excludes:
            line_start = haystack.rfind("\n", 0, idx) + 1
            line_end = haystack.find("\n", end)
            if line_end == -1:
                line_end = len(haystack)
            span = haystack[line_start:line_end]
            if any(e in span for e in excludes):
                start = end
                continue

        line_no += content.count("\n", counted, idx)
        counted = idx
        affected.update(range(line_no, line_no + content.count("\n", idx, end) + 1))

        parts.append(content[pos:idx])
        parts.append(replace)
        pos = start = end
        replacements += 1

    parts.append(content[pos:])
    return "".join(parts), replacements, len(affected)


# --- Reading ---


def _detect_line_ending(head: bytes) -> str:
    """CRLF when the first newline in head is preceded by a carriage return."""
    nl = head.find(b"\n")
    if nl > 0 and head[nl - 1 : nl] == b"\r":
        return "\r\n"
    return "\n"


def _read_lines(path: str | Path) -> tuple[list[str], str]:
    """Read a file as lines without terminators. Returns (lines, line_ending).

    A trailing carriage return is dropped from each line. Raises LineTooLongError
    for any line longer than MAX_LINE_BYTES.
    """
    lines: list[str] = []
    with open(path, "rb") as f:
        line_ending = _detect_line_ending(f.read(SNIFF_BYTES))
        f.seek(0)
        while raw := f.readline(MAX_LINE_BYTES + 1):
            if len(raw) > MAX_LINE_BYTES and not raw.endswith(b"\n"):
                raise LineTooLongError(f"line too long (max {MAX_LINE_BYTES // (1024 * 1024)}MB): {path}")
            if raw.endswith(b"\n"):
                raw = raw[:-1]
            if raw.endswith(b"\r"):
                raw = raw[:-1]
            lines.append(raw.decode(ENCODING, ENCODING_ERRORS))
    return lines, line_ending


# --- Atomic writer ---


def _resolve_target(path: str | Path) -> Path:
    """Follow symlinks to the real file. A path that does not exist is used as given."""
    try:
        return Path(os.path.realpath(path, strict=True))
    except FileNotFoundError:
        return Path(path)
    except OSError as e:
        raise OSError(f"failed to resolve path {path}: {e}") from e


def _write_atomic(path: str | Path, data: bytes):
    """Replace the file's content via temp file + fsync + rename in the same directory.

    The original stays intact until the rename. Read-only files are refused.
    """
    target = _resolve_target(path)

    mode = DEFAULT_FILE_MODE
    try:
        mode = stat.S_IMODE(target.stat().st_mode)
    except FileNotFoundError:
        pass
    else:
        if not mode & stat.S_IWUSR:
            raise PermissionError(f"file is read-only: {target}")

    fd, tmp_path = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, target)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_path)
        raise


def _write_lines_atomic(path: str | Path, lines: list[str], line_ending: str):
    """Write lines joined and terminated by line_ending."""
    text = line_ending.join(lines) + line_ending if lines else ""
    _write_atomic(path, text.encode(ENCODING, ENCODING_ERRORS))


# --- File processor ---


def _process_file(path: str | Path, request: ReplaceRequest) -> tuple[int, int]:
    """Apply the request to one file. Returns (lines_changed, replacements).

    Counts are identical for dry and real runs; only the write is skipped.
    Raises OSError or ReplaceError on failure.
    """
    if request.search == request.replace:
        return 0, 0
    if _is_multiline(request.search, request.replace):
        return _process_file_multiline(path, request)

    lines, line_ending = _read_lines(path)

    ci = request.case_insensitive
    ww = request.whole_word
    search = request.search
    needle = _fold(search) if ci else search
    excludes = [_fold(e) if ci else e for e in request.exclude]

    modified = list(lines)
    lines_changed = 0
    replacements = 0
    for i, line in enumerate(lines):
        probe = _fold(line) if ci else line
        found = _contains_whole_word(line, search, fold=ci) if ww else needle in probe
        if not found:
            continue
        if any(e in probe for e in excludes):
            continue
        new_line = _replace_in_line(line, search, request.replace, ci, ww)
        if new_line == line:
            continue
        modified[i] = new_line
        lines_changed += 1
        replacements += _count_replacements(line, search, ci, ww)

    if lines_changed and not request.dry_run:
        _write_lines_atomic(path, modified, line_ending)
        _after_write(path, request, lines_changed, replacements)
    return lines_changed, replacements


def _process_file_multiline(path: str | Path, request: ReplaceRequest) -> tuple[int, int]:
    content = Path(path).read_bytes().decode(ENCODING, ENCODING_ERRORS)

    search = request.search
    replace = request.replace
    if "\r\n" in content:
        search = _to_crlf(search)
        replace = _to_crlf(replace)

    modified, replacements, lines_changed = _replace_content_multiline(
        content,
        search,
        replace,
        case_insensitive=request.case_insensitive,
        whole_word=request.whole_word,
        exclude=request.exclude,
    )
    if replacements == 0:
        return 0, 0

    if not request.dry_run:
        _write_atomic(path, modified.encode(ENCODING, ENCODING_ERRORS))
        _after_write(path, request, lines_changed, replacements)
    return lines_changed, replacements


def _after_write(path: str | Path, request: ReplaceRequest, lines_changed: int, replacements: int):
    _log("INFO", "file", str(path), metrics=f"lines={lines_changed} replacements={replacements}")
    if request.verbose:
        _report(f"Modified: {path} ({replacements} replacements in {lines_changed} lines)")


def _try_process_file(path: str, request: ReplaceRequest) -> tuple[int, int] | None:
    """Per-file failures are reported and skipped, never raised."""
    try:
        return _process_file(path, request)
    except (OSError, UnicodeError, ReplaceError) as e:
        _warn(f"failed to process {path}: {e}")
        return None


# --- Walker ---


def _collect_directories(roots: tuple[str, ...] | list[str]) -> list[str]:
    """Every directory under roots (roots included), lexical depth-first, de-duplicated."""
    seen: set[str] = set()
    collected: list[str] = []

    def _add(directory: str):
        key = os.path.normpath(directory)
        if key not in seen:
            seen.add(key)
            collected.append(key)

    def _on_error(err: OSError):
        _warn(f"failed to access {err.filename}: {err.strerror or err}")

    for root in roots:
        _add(root)
        for dirpath, dirnames, _ in os.walk(root, onerror=_on_error):
            dirnames.sort()
            _add(dirpath)
    return collected


def _process_directory(directory: str, request: ReplaceRequest) -> DirectoryOutcome:
    """Process the immediate regular files of one directory. Never descends."""
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        raise TraversalError(f"failed to read directory {directory}: {e}") from e

    outcome = DirectoryOutcome(directory=directory)
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            continue
        try:
            info = entry.stat(follow_symlinks=False)
        except OSError as e:
            _warn(f"failed to get file info for {entry.name}: {e}")
            continue
        if not stat.S_ISREG(info.st_mode):
            continue
        if request.extension and not entry.name.endswith(request.extension):
            continue

        counts = _try_process_file(os.path.join(directory, entry.name), request)
        if counts:
            outcome.record(entry.name, *counts)
    return outcome


def _process_files(paths: tuple[str, ...] | list[str], request: ReplaceRequest) -> DirectoryOutcome:
    """Process an explicit file list into the synthetic "(files)" group."""
    outcome = DirectoryOutcome(directory=FILES_GROUP)
    for path in paths:
        try:
            info = os.stat(path)
        except OSError as e:
            _warn(f"failed to stat file {path}: {e}")
            continue
        if not stat.S_ISREG(info.st_mode):
            _warn(f"not a regular file: {path}")
            continue
        if request.extension and not path.endswith(request.extension):
            continue

        counts = _try_process_file(path, request)
        if counts:
            outcome.record(path, *counts)
    return outcome


# --- Operation ---


def _plural(n: int, singular: str, plural: str = "") -> str:
    return singular if n == 1 else (plural or f"{singular}s")


def _summarize(groups: list[DirectoryOutcome], request: ReplaceRequest) -> str:
    files = sum(g.files_modified for g in groups)
    lines = sum(g.lines_changed for g in groups)
    replacements = sum(g.total_replacements for g in groups)

    action = "Would modify" if request.dry_run else "Modified"
    across = ""
    if not request.files and len(request.directories) > 1:
        touched = sum(1 for g in groups if g.files_modified > 0)
        across = f" across {touched} {_plural(touched, 'directory', 'directories')}"

    return (
        f"{action} {files} {_plural(files, 'file')}{across}: "
        f"{replacements} {_plural(replacements, 'replacement')} in {lines} {_plural(lines, 'line')}"
    )


def _replace_impl(request: ReplaceRequest) -> OperationResult:
    """Run one replacement operation over files or directories.

    CLI: replace, dry
    MCP: replace

    Raises TraversalError when a directory cannot be listed.
    """
    start_ms = time.time() * 1000

    if request.files:
        groups = [_process_files(request.files, request)]
    else:
        directories = (
            _collect_directories(request.directories) if request.recursive else list(request.directories)
        )
        groups = [_process_directory(d, request) for d in directories]

    result = OperationResult(
        summary=_summarize(groups, request),
        directories=groups,
        dry_run=request.dry_run,
    )

    latency_ms = round(time.time() * 1000 - start_ms, 2)
    _log(
        "INFO",
        "dry" if request.dry_run else "replace",
        f"{request.search!r} -> {request.replace!r}",
        detail=result.summary,
        metrics=f"latency_ms={latency_ms} groups={len(groups)} replacements={result.total_replacements}",
    )
    return result


def _as_list(value: Any) -> list[str]:
    """Accept a single string or a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return [v for v in value if isinstance(v, str) and v]


def _build_request(
    search: str | None,
    replace: str | None,
    *,
    files: Any = None,
    directories: Any = None,
    extension: str = "",
    exclude: Any = None,
    case_insensitive: bool = False,
    whole_word: bool = False,
    dry_run: bool = False,
    recursive: bool = False,
    verbose: bool = False,
) -> ReplaceRequest:
    """Validate boundary input into a ReplaceRequest. Raises ConfigError."""
    if not isinstance(search, str) or not search:
        raise ConfigError("search is required")
    if not isinstance(replace, str):
        raise ConfigError("replace is required (use empty string to delete matches)")
    return ReplaceRequest(
        directories=tuple(_as_list(directories)),
        files=tuple(_as_list(files)),
        search=search,
        replace=replace,
        extension=extension or "",
        exclude=tuple(_as_list(exclude)),
        case_insensitive=case_insensitive,
        whole_word=whole_word,
        dry_run=dry_run,
        recursive=recursive,
        verbose=verbose,
    )


# =============================================================================
# CLI INTERFACE
# =============================================================================
def _split_csv(values: list[str]) -> list[str]:
    """Flatten repeated, comma-separated option values."""
    out: list[str] = []
    for value in values:
        out.extend(part.strip() for part in value.split(",") if part.strip())
    return out


def _get_content(arg: str) -> str:
    """Return arg or stdin if arg is '-'."""
    if arg == "-":
        return sys.stdin.read()
    return arg


def _cli_replace(args, dry_run: bool) -> int:
    assert not (args.search == "-" and args.replace == "-"), "only one of SEARCH/REPLACE can be read from stdin"
    search = _get_content(args.search)
    replace = _get_content(args.replace)

    request = _build_request(
        search,
        replace,
        files=_split_csv(args.files),
        directories=_split_csv(args.dirs),
        extension=args.ext,
        exclude=_split_csv(args.exclude),
        case_insensitive=args.case_insensitive,
        whole_word=args.whole_word,
        dry_run=dry_run,
        recursive=args.recursive,
        verbose=args.verbose,
    )
    if request.search == request.replace:
        _report("Warning: search and replace are identical, no changes will be made")

    result = _replace_impl(request)
    print(result.to_json())
    return EXIT_CHANGED if result.total_replacements else EXIT_NO_MATCHES


def _add_replace_arguments(p):
    p.add_argument("search", help="Literal text to find ('-' reads stdin)")
    p.add_argument("replace", help="Replacement text; '' deletes ('-' reads stdin)")
    p.add_argument("-d", "--dir", action="append", default=[], dest="dirs", help="Directories (repeatable, comma-separated)")
    p.add_argument("-f", "--file", action="append", default=[], dest="files", help="Files; wins over --dir")
    p.add_argument("-x", "--ext", default="", help="Filename suffix filter (e.g. .py)")
    p.add_argument("-e", "--exclude", action="append", default=[], help="Skip lines containing these")
    p.add_argument("-i", "--case-insensitive", action="store_true")
    p.add_argument("-w", "--whole-word", action="store_true")
    p.add_argument("-r", "--recursive", action="store_true", help="Include subdirectories")
    p.add_argument("-v", "--verbose", action="store_true", help="Progress on stderr")


def main(argv: list[str] | None = None):
    import argparse

    parser = argparse.ArgumentParser(description="Exact-string search and replace across files")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {CONFIG['version']}")
    sub = parser.add_subparsers(dest="command", help="Commands")

    # --- mcp-stdio ---
    sub.add_parser("mcp-stdio", help="Run as MCP server")

    # --- replace ---
    p_replace = sub.add_parser("replace", help="Replace in place")
    _add_replace_arguments(p_replace)
    p_replace.add_argument("-n", "--dry-run", action="store_true", help="Preview only")

    # --- dry ---
    p_dry = sub.add_parser("dry", help="Preview replacements (no writes)")
    _add_replace_arguments(p_dry)

    args = parser.parse_args(argv)

    code = EXIT_CHANGED
    try:
        if args.command == "mcp-stdio":
            _run_mcp()
        elif args.command == "replace":
            code = _cli_replace(args, dry_run=args.dry_run)
        elif args.command == "dry":
            code = _cli_replace(args, dry_run=True)
        else:
            parser.print_help()
    except (AssertionError, Exception) as e:
        _log("ERROR", args.command or "unknown", str(e))
        print(f"Error: {e}", file=sys.stderr)
        code = EXIT_ERROR
    sys.exit(code)


# =============================================================================
# FASTMCP SERVER
# =============================================================================
def _run_mcp():
    from fastmcp import FastMCP
    from fastmcp.exceptions import ToolError

    mcp = FastMCP(CONFIG["server_name"])

    @mcp.tool(name="replace")
    def replace_tool(
        search: str,
        replace: str,
        file: list[str] | str | None = None,
        dir: list[str] | str | None = None,
        ext: str = "",
        exclude: list[str] | None = None,
        case_insensitive: bool = False,
        whole_word: bool = False,
        dry_run: bool = False,
        recursive: bool = False,
    ) -> str:
        """Search and replace exact strings in files across directories.

        Scans single-depth by default; set recursive for subdirectories. Files are
        modified in place (atomic write). Returns JSON with per-directory and per-file
        counts. Zero total_replacements means no matches.

        Args:
            search: Text to find. Include newlines to match across lines.
            replace: Replacement text (empty string = delete). May contain newlines.
            file: File path or list of paths. Takes precedence over dir.
            dir: Directory or list of directories (default: current directory)
            ext: Filename suffix filter (e.g. ".go", ".txt")
            exclude: Lines containing any of these strings are not modified
            case_insensitive: Case-insensitive matching
            whole_word: Match whole words only
            dry_run: Preview without modifying files
            recursive: Include all subdirectories
        """
        try:
            request = _build_request(
                search,
                replace,
                files=file,
                directories=dir,
                extension=ext,
                exclude=exclude,
                case_insensitive=case_insensitive,
                whole_word=whole_word,
                dry_run=dry_run,
                recursive=recursive,
            )
            result = _replace_impl(request)
        except (ReplaceError, ValueError) as e:
            _log("ERROR", "replace", str(e))
            raise ToolError(f"Replacement failed: {e}") from e
        return result.to_json()

    print("replace MCP server starting...", file=sys.stderr)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
