"""
Bulk CSV import.

The first line is a header naming the columns (case-insensitive):

    title, dueDate, priority     required
    description, tags, completed optional

Every following non-blank record becomes one create call; a quoted field may
run over several lines. Rows are validated independently: a bad row is
reported with the line it starts on (the header is line 1) and skipped, and
the import carries on. Only an empty input, an unreadable header or a missing
required column stop the whole import.
"""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from threading import Event
from typing import IO, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import ImportFormatError, TaskboardError, TaskValidationError
from .models import Priority
from .repositories import Repository
from .schemas import TaskCreate, TaskPatch, parse_due_date
from .validation import split_tag_field, validate_create

logger = logging.getLogger(__name__)

CsvSource = Union[bytes, str, IO[bytes], IO[str]]

_PRIORITY_WORDS: Dict[str, Priority] = {
    "low": Priority.LOW,
    "med": Priority.MED,
    "medium": Priority.MED,
    "high": Priority.HIGH,
}
_TRUE_WORDS = {"true", "1", "yes", "y"}


class RowError(Exception):
    """One CSV row cannot be imported. The message is shown to the user."""


@dataclass
class ImportResult:
    """
    Accumulated outcome of an import.

    errors keeps input order. There is normally one error per failed row, but
    a row can also add an error while still counting as successful (see
    import_tasks), so the two are not guaranteed to line up 1:1.
    """
    successful: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    created_ids: List[str] = field(default_factory=list)
    cancelled: bool = False

    @classmethod
    def aborted(cls, message: str) -> "ImportResult":
        return cls(successful=0, failed=1, errors=[message])

    def row_failed(self, line_no: int, message: str) -> None:
        self.failed += 1
        self.errors.append(f"Line {line_no}: {message}")

    def row_created(self, task_id: str) -> None:
        self.successful += 1
        self.created_ids.append(task_id)


@dataclass(frozen=True)
class ColumnMap:
    """
    Column positions resolved once from the header row.

    Optional columns that are absent are -1. width is the number of header
    fields; data rows with fewer fields are rejected.
    """
    title: int
    due_date: int
    priority: int
    description: int = -1
    tags: int = -1
    completed: int = -1
    width: int = 0

    REQUIRED = ("title", "dueDate", "priority")

    @classmethod
    def from_header(cls, header: Sequence[str]) -> "ColumnMap":
        """
        Resolve column positions by case-insensitive name.

        Raises:
            ImportFormatError: when title, dueDate or priority is missing.
        """
        positions: Dict[str, int] = {}
        for index, name in enumerate(header):
            # The first column with a given name wins.
            positions.setdefault(name.strip().lower(), index)

        missing = [name for name in cls.REQUIRED if name.lower() not in positions]
        if missing:
            raise ImportFormatError(f"Missing required column(s): {', '.join(missing)}")

        return cls(
            title=positions["title"],
            due_date=positions["duedate"],
            priority=positions["priority"],
            description=positions.get("description", -1),
            tags=positions.get("tags", -1),
            completed=positions.get("completed", -1),
            width=len(header),
        )

    def get(self, row: Sequence[str], index: int) -> str:
        """Return the trimmed cell at index, or '' for an absent optional column."""
        if index < 0 or index >= len(row):
            return ""
        return row[index].strip()


_READER_OPTIONS = {"strict": True, "skipinitialspace": True}


def _records(lines: Iterable[str]) -> Iterator[Tuple[int, Union[List[str], RowError]]]:
    """
    Tokenize physical lines into records, yielding (starting line number, fields).

    Quoting follows RFC 4180: '"' opens and closes a quoted field, '""' inside
    it is a literal quote, and commas and line breaks inside quotes are kept,
    so one record may cover several lines. A record that cannot be tokenized,
    including one whose quote is still open at end of input, is yielded as a
    RowError in place of its fields and reading resumes on the next line.
    """
    reader = csv.reader(lines, **_READER_OPTIONS)
    while True:
        start = reader.line_num + 1
        try:
            fields = next(reader)
        except StopIteration:
            return
        except csv.Error as exc:
            yield start, RowError(f"Malformed CSV row ({exc})")
            continue
        yield start, fields


# PUBLIC_INTERFACE
def tokenize_record(record: str) -> List[str]:
    """
    Split the first CSV record of record into fields.

    Raises:
        RowError: when the record leaves a quote open or has text after a closing quote.
    """
    for _, fields in _records(io.StringIO(record, newline="")):
        if isinstance(fields, RowError):
            raise fields
        return fields
    return []


def _is_blank(fields: Sequence[str]) -> bool:
    return not fields or (len(fields) == 1 and not fields[0].strip())


def parse_priority(raw: str) -> Priority:
    try:
        return _PRIORITY_WORDS[raw.strip().lower()]
    except KeyError:
        raise RowError(f"Invalid priority '{raw}' (expected Low, Med, Medium or High)") from None


def parse_completed(raw: str) -> bool:
    """Anything other than true/1/yes/y, including blank, means not completed."""
    return raw.strip().lower() in _TRUE_WORDS


def parse_row(fields: Sequence[str], columns: ColumnMap) -> Tuple[TaskCreate, bool]:
    """
    Convert one tokenized row into a create request and its completed flag.

    Raises:
        RowError: for a column-count mismatch or an unparsable field.
        TaskValidationError: when the request breaks a create rule.
    """
    if len(fields) < columns.width:
        raise RowError(f"Column count mismatch (expected {columns.width}, found {len(fields)})")

    title = columns.get(fields, columns.title)
    if not title:
        raise RowError("Title is required")

    priority = parse_priority(columns.get(fields, columns.priority))

    raw_due = columns.get(fields, columns.due_date)
    try:
        due_date = parse_due_date(raw_due)
    except ValueError:
        raise RowError(f"Invalid due date '{raw_due}'") from None

    request = TaskCreate(
        title=title,
        description=columns.get(fields, columns.description) or None,
        due_date=due_date,
        priority=priority,
        tags=split_tag_field(columns.get(fields, columns.tags)),
    )
    validate_create(request)
    return request, parse_completed(columns.get(fields, columns.completed))



def _lines(source: CsvSource) -> Iterator[str]:
    """Yield physical lines, terminators included, without a leading BOM."""
    if isinstance(source, bytes):
        source = source.decode("utf-8-sig", errors="replace")
    if isinstance(source, str):
        if source.startswith("\ufeff"):
            source = source[1:]
        yield from io.StringIO(source, newline="")
        return

    if isinstance(source.read(0), bytes):
        text = io.TextIOWrapper(source, encoding="utf-8-sig", errors="replace", newline="")  # type: ignore[arg-type]
        try:
            yield from text
        finally:
            # Leave the caller's stream open.
            text.detach()
        return

    first = True
    for line in source:  # type: ignore[union-attr]
        if first:
            line = line.lstrip("\ufeff")
            first = False
        yield line


# PUBLIC_INTERFACE
def import_tasks(
    source: CsvSource,
    repository: Repository,
    cancel: Optional[Event] = None,
) -> ImportResult:
    """
    Import tasks from CSV, creating one task per valid row.

    Byte input is decoded as UTF-8. Undecodable bytes do not stop the import:
    they are stored as U+FFFD replacement characters in the affected fields.

    Errors are numbered by the line a record starts on, so a row whose quoted
    description spans lines 4-6 is reported as line 4.

    A row with completed=true is created first and then patched to completed.
    The two writes are not atomic: if the patch fails the task stays created
    (and counted as successful) but open, and an error line says so.

    When cancel is set the import stops before the next row and returns what
    it has accumulated so far with cancelled=True.
    """
    records = _records(_lines(source))

    header = next(records, None)
    if header is None:
        logger.info("CSV import rejected: empty input")
        return ImportResult.aborted("CSV file is empty")

    try:
        if isinstance(header[1], RowError):
            raise header[1]
        columns = ColumnMap.from_header(header[1])
    except RowError as exc:
        logger.info("CSV import rejected: unreadable header")
        return ImportResult.aborted(f"Line 1: Unable to parse CSV header. {exc}")
    except ImportFormatError as exc:
        logger.info("CSV import rejected: %s", exc)
        return ImportResult.aborted(str(exc))

    result = ImportResult()
    for line_no, fields in records:
        if cancel is not None and cancel.is_set():
            result.cancelled = True
            logger.warning("CSV import cancelled at line %s", line_no)
            break
        if isinstance(fields, RowError):
            result.row_failed(line_no, str(fields))
            continue
        if _is_blank(fields):
            continue

        try:
            request, completed = parse_row(fields, columns)
        except RowError as exc:
            result.row_failed(line_no, str(exc))
            continue
        except TaskValidationError as exc:
            result.row_failed(line_no, exc.message)
            continue

        try:
            created = repository.create(request)
        except TaskboardError as exc:
            logger.warning("CSV import: create failed at line %s: %s", line_no, exc)
            result.row_failed(line_no, str(exc))
            continue
        result.row_created(created["id"])

        if completed:
            try:
                patched = repository.patch(created["id"], TaskPatch(completed=True))
            except TaskboardError as exc:
                patched = None
                logger.warning("CSV import: completing task %s failed: %s", created["id"], exc)
            if patched is None:
                result.errors.append(f"Line {line_no}: Task created but could not be marked completed")

    logger.info(
        "CSV import finished successful=%s failed=%s cancelled=%s",
        result.successful,
        result.failed,
        result.cancelled,
    )
    return result
