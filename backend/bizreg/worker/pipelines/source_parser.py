"""
Raw Record Parser
Turn downloaded source bytes into CandidateRecords

- 국내사업자 CSV: EUC-KR, 따옴표 안의 쉼표는 값의 일부, 고정 컬럼 위치 사용
- 국외사업자 스프레드시트: 첫 행 헤더로 컬럼 위치를 찾는다

Both parsers return a ParsedSource whose records are a lazy, single-use
generator. The counters fill in while the records are consumed, so they are
final only after the generator is exhausted.
"""

import io
import logging
import zipfile
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from bizreg.core.exceptions import MalformedSourceError, RecordMalformedError
from bizreg.services.registry_client import normalize_registration_key

logger = logging.getLogger(__name__)


# ============================================================================
# Source layout
# ============================================================================

# 국내사업자 CSV 고정 컬럼 위치 (0-based)
COMPANY_NAME_COLUMN = 2
REGISTRATION_KEY_COLUMN = 3
CORPORATE_TYPE_COLUMN = 4
ADDRESS_COLUMN = 9

DEFAULT_CORPORATE_MARKER = "법인"
DEFAULT_ENCODING = "euc-kr"

HTML_MARKERS = (b"<!doctype html", b"<html")

# 국외사업자 스프레드시트 헤더
COL_MANAGEMENT_NUMBER = "관리번호"
COL_COMPANY_NAME = "법인명(상호)"
COL_BUSINESS_NUMBER = "사업자번호"
COL_CORPORATE_FLAG = "법인여부"
COL_OPERATING_STATUS = "운영상태"

REQUIRED_SHEET_COLUMNS = (
    COL_MANAGEMENT_NUMBER,
    COL_COMPANY_NAME,
    COL_CORPORATE_FLAG,
    COL_OPERATING_STATUS,
)

CORPORATE_FLAG_YES = "Y"
OPERATING_STATUS_ACTIVE = "01"


@dataclass(frozen=True)
class CandidateRecord:
    """파싱된 후보 레코드 (저장 전, 보강 전)"""
    registration_key: Optional[str] = None  # 사업자등록번호 (숫자만)
    mail_order_key: Optional[str] = None  # 국외사업자 관리번호
    company_name: Optional[str] = None
    address: Optional[str] = None

    @property
    def dedup_key(self) -> Optional[str]:
        return self.mail_order_key or self.registration_key


@dataclass
class ParseCounters:
    total: int = 0
    filtered_out: int = 0
    malformed: int = 0
    emitted: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "filtered_out": self.filtered_out,
            "malformed": self.malformed,
            "emitted": self.emitted,
        }


@dataclass
class ParsedSource:
    """Parser output: lazy records + live counters + source-level error"""
    records: Iterator[CandidateRecord]
    counters: ParseCounters = field(default_factory=ParseCounters)
    error: Optional[MalformedSourceError] = None
    malformed_samples: list[RecordMalformedError] = field(default_factory=list)

    @property
    def is_malformed(self) -> bool:
        return self.error is not None


def _empty_source(error: MalformedSourceError) -> ParsedSource:
    logger.error(f"[Parser] {error.message}")
    return ParsedSource(records=iter(()), error=error)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


# ============================================================================
# Delimited text (국내사업자)
# ============================================================================

def split_delimited_line(line: str) -> list[str]:
    """
    쉼표로 분리하되 큰따옴표 구간 안의 쉼표는 값으로 취급

    >>> split_delimited_line('1,"A, B",C')
    ['1', 'A, B', 'C']
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)

    fields.append("".join(current))
    return fields


def contains_html(data: bytes) -> bool:
    """다운로드 결과가 CSV 대신 HTML 오류 페이지인지"""
    lowered = data.lower()
    return any(marker in lowered for marker in HTML_MARKERS)


def parse_domestic_csv(
    data: bytes,
    encoding: str = DEFAULT_ENCODING,
    corporate_marker: str = DEFAULT_CORPORATE_MARKER,
) -> ParsedSource:
    """
    국내사업자 CSV 파싱

    Args:
        data: 원본 CSV bytes
        encoding: 원본 인코딩 (EUC-KR/CP949)
        corporate_marker: 법인 여부 컬럼 값 ("법인")

    Returns:
        ParsedSource (헤더가 없거나 HTML이면 error 설정, 레코드 없음)
    """
    if contains_html(data):
        return _empty_source(MalformedSourceError("Source is an HTML page, not CSV"))

    stream = io.TextIOWrapper(io.BytesIO(data), encoding=encoding, errors="replace")
    header = stream.readline()
    if not header.strip():
        return _empty_source(MalformedSourceError("CSV header missing"))

    logger.info(f"[Parser] CSV header: {split_delimited_line(header.strip())}")

    parsed = ParsedSource(records=iter(()))
    parsed.records = _iter_domestic_rows(stream, corporate_marker, parsed)
    return parsed


def _iter_domestic_rows(
    lines: Iterable[str],
    corporate_marker: str,
    parsed: ParsedSource,
) -> Iterator[CandidateRecord]:
    counters = parsed.counters

    for line_number, line in enumerate(lines, start=2):
        line = line.rstrip("\r\n")
        if not line.strip():
            continue

        counters.total += 1
        fields = split_delimited_line(line)

        if len(fields) <= CORPORATE_TYPE_COLUMN:
            _record_malformed(parsed, RecordMalformedError(
                f"Too few columns ({len(fields)})", row_number=line_number,
            ))
            continue

        if fields[CORPORATE_TYPE_COLUMN].strip() != corporate_marker:
            counters.filtered_out += 1
            continue

        key = normalize_registration_key(fields[REGISTRATION_KEY_COLUMN])
        if not key:
            _record_malformed(parsed, RecordMalformedError(
                "Corporate row without business number", row_number=line_number,
            ))
            continue

        address = fields[ADDRESS_COLUMN] if len(fields) > ADDRESS_COLUMN else None

        counters.emitted += 1
        yield CandidateRecord(
            registration_key=key,
            company_name=_blank_to_none(fields[COMPANY_NAME_COLUMN]),
            address=_blank_to_none(address),
        )

    logger.info(f"[Parser] CSV done: {counters.to_dict()}")


# ============================================================================
# Spreadsheet (국외사업자)
# ============================================================================

def cell_text(value: Any) -> str:
    """셀 값을 문자열로 (정수형 숫자는 소수점 없이)"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _cell(row: tuple, index: Optional[int]) -> Any:
    """행 길이를 넘는 셀은 빈 셀로 취급 (read-only 모드는 짧은 행을 채우지 않음)"""
    if index is None or index >= len(row):
        return None
    return row[index]


def parse_overseas_workbook(data: bytes) -> ParsedSource:
    """
    국외사업자 스프레드시트 파싱 (첫 번째 시트)

    필수 컬럼이 하나라도 없으면 시트 전체를 포기하고 빈 결과를 반환한다.
    """
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        return _empty_source(MalformedSourceError(f"Unreadable workbook: {e}"))

    sheet = workbook.worksheets[0]
    rows = sheet.iter_rows(values_only=True)
    header = next(rows, None)
    if header is None:
        workbook.close()
        return _empty_source(MalformedSourceError("Sheet header missing"))

    column_index: dict[str, int] = {}
    for index, value in enumerate(header):
        name = cell_text(value)
        if name and name not in column_index:
            column_index[name] = index

    missing = [name for name in REQUIRED_SHEET_COLUMNS if name not in column_index]
    if missing:
        workbook.close()
        return _empty_source(MalformedSourceError(f"Required columns missing: {missing}"))

    logger.info(f"[Parser] Sheet '{sheet.title}' columns: {column_index}")

    parsed = ParsedSource(records=iter(()))
    parsed.records = _iter_sheet_rows(workbook, rows, column_index, parsed)
    return parsed


def _iter_sheet_rows(
    workbook,
    rows: Iterator[tuple],
    column_index: dict[str, int],
    parsed: ParsedSource,
) -> Iterator[CandidateRecord]:
    counters = parsed.counters
    business_number_column = column_index.get(COL_BUSINESS_NUMBER)

    try:
        for row_number, row in enumerate(rows, start=2):
            if not row or all(cell_text(value) == "" for value in row):
                continue

            counters.total += 1
            try:
                corporate_flag = cell_text(_cell(row, column_index[COL_CORPORATE_FLAG]))
                status = cell_text(_cell(row, column_index[COL_OPERATING_STATUS]))
                if corporate_flag != CORPORATE_FLAG_YES or status != OPERATING_STATUS_ACTIVE:
                    counters.filtered_out += 1
                    continue

                management_number = cell_text(_cell(row, column_index[COL_MANAGEMENT_NUMBER]))
                company_name = cell_text(_cell(row, column_index[COL_COMPANY_NAME]))
                business_number = cell_text(_cell(row, business_number_column))
            except (TypeError, ValueError) as e:
                _record_malformed(parsed, RecordMalformedError(
                    f"Cell access failed: {e}", row_number=row_number,
                ))
                continue

            if not management_number or not company_name:
                _record_malformed(parsed, RecordMalformedError(
                    "관리번호 또는 법인명(상호) 누락",
                    key=management_number or None,
                    row_number=row_number,
                ))
                continue

            counters.emitted += 1
            yield CandidateRecord(
                mail_order_key=management_number,
                registration_key=normalize_registration_key(business_number) or None,
                company_name=company_name,
            )
    finally:
        workbook.close()

    logger.info(f"[Parser] Sheet done: {counters.to_dict()}")


# ============================================================================
# Helpers
# ============================================================================

MAX_MALFORMED_SAMPLES = 20


def _record_malformed(parsed: ParsedSource, error: RecordMalformedError) -> None:
    parsed.counters.malformed += 1
    if len(parsed.malformed_samples) < MAX_MALFORMED_SAMPLES:
        parsed.malformed_samples.append(error)
    logger.debug(f"[Parser] Malformed row {error.row_number}: {error.message}")
