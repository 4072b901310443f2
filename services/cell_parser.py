"""
Cell parsing service for run workbooks.

This module provides utilities for turning loosely typed cell values into
strings, quantities and dates, and for splitting the composite text cells
found in run exports (location banners, machine info lines, SKU labels).
"""

import math
import re
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple, Union

Number = Union[int, float]


class CellParser:
    """Parse and normalize run workbook cell values."""

    LOCATION_BANNER_PATTERN = re.compile(r'^(?P<name>.+?)\s*\((?P<date>[^)]+)\)$')
    MACHINE_INFO_DATE_PATTERN = re.compile(r'\((\d{1,2}/\d{1,2}/\d{4})\)\s*$')
    MACHINE_TYPE_PATTERN = re.compile(r'\(([^)]+)\)\s*$')
    ISO_DATE_PATTERN = re.compile(r'(?<!\d)(\d{4})-(\d{1,2})-(\d{1,2})(?!\d)')
    DAY_FIRST_DATE_PATTERN = re.compile(r'(?<!\d)(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4})(?!\d)')
    NULL_TOKENS = {'', '-', 'n/a', 'na', 'null', 'none'}
    SKU_SEPARATOR = ' - '

    @staticmethod
    def normalize_string(value: Any) -> Optional[str]:
        """
        Convert a cell value to trimmed text.

        Integral floats lose their ".0" so numeric codes read as typed
        (coil 12.0 -> "12"). Dates render as YYYY-MM-DD.

        Returns:
            Trimmed text, or None for empty cells
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        normalized = str(value).strip()
        return normalized or None

    @staticmethod
    def cell_as_string(row, index: Optional[int]) -> str:
        """Return the trimmed text of row[index], '' when missing."""
        if row is None or index is None or index < 0 or index >= len(row):
            return ''
        return CellParser.normalize_string(row[index]) or ''

    @staticmethod
    def parse_optional_number(value: Any) -> Optional[Number]:
        """
        Parse a quantity cell permissively.

        Blank, placeholder, boolean, non-numeric and Excel error cells
        (#DIV/0!, #N/A, ...) resolve to None, never to zero.

        Returns:
            int for integral values, float otherwise, or None
        """
        if value is None or isinstance(value, (bool, date)):
            return None

        if isinstance(value, (int, float)):
            number = float(value)
        else:
            normalized = str(value).strip()
            if normalized.lower() in CellParser.NULL_TOKENS or normalized.startswith('#'):
                return None
            try:
                number = float(normalized.replace(',', ''))
            except ValueError:
                return None

        if not math.isfinite(number):
            return None
        if number.is_integer():
            return int(number)
        return number

    @staticmethod
    def parse_date(value: Any) -> Optional[date]:
        """
        Parse a date cell.

        Accepts datetime/date values and text in YYYY-MM-DD or day-first
        D/M/YYYY form. Impossible dates resolve to None.
        """
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            return None

        text = value.strip()
        match = CellParser.ISO_DATE_PATTERN.fullmatch(text)
        if match:
            year, month, day = match.groups()
            return CellParser._build_date(year, month, day)

        match = CellParser.DAY_FIRST_DATE_PATTERN.fullmatch(text)
        if match:
            day, month, year = match.groups()
            return CellParser._build_date(year, month, day)

        return None

    @staticmethod
    def find_date_in_text(text: Optional[str]) -> Optional[date]:
        """Find the first valid date pattern inside free text (sheet names, filenames)."""
        if not text:
            return None

        candidates = []
        for match in CellParser.ISO_DATE_PATTERN.finditer(text):
            year, month, day = match.groups()
            candidates.append((match.start(), CellParser._build_date(year, month, day)))
        for match in CellParser.DAY_FIRST_DATE_PATTERN.finditer(text):
            day, month, year = match.groups()
            candidates.append((match.start(), CellParser._build_date(year, month, day)))

        for _, parsed in sorted(candidates, key=lambda item: item[0]):
            if parsed is not None:
                return parsed
        return None

    @staticmethod
    def _build_date(year: str, month: str, day: str) -> Optional[date]:
        try:
            return date(int(year), int(month), int(day))
        except ValueError:
            return None

    @staticmethod
    def parse_sku(value: str) -> Tuple[str, str, Optional[str]]:
        """
        Split a composite SKU label.

        "CODE - Name - Type" -> (code, name, type). Middle segments rejoin as
        the name; "CODE - Name" has no type; a bare "CODE" has no name.

        Returns:
            (code, name, type)
        """
        if not value:
            return '', '', None

        parts = [part.strip() for part in value.split(CellParser.SKU_SEPARATOR)]
        parts = [part for part in parts if part]
        if not parts:
            return '', '', None

        code, others = parts[0], parts[1:]
        if not others:
            return code, '', None
        if len(others) == 1:
            return code, others[0], None

        return code, CellParser.SKU_SEPARATOR.join(others[:-1]), others[-1]

    @staticmethod
    def parse_location_banner(value: str, prefix: str) -> Tuple[str, Optional[date]]:
        """
        Parse "Location: Name (10/01/2025)".

        Returns:
            (location name, run date or None)
        """
        trimmed = value.replace(prefix, '', 1).strip()
        match = CellParser.LOCATION_BANNER_PATTERN.match(trimmed)
        if not match:
            return trimmed, None
        return match.group('name').strip(), CellParser.parse_date(match.group('date'))

    @staticmethod
    def _machine_marker_match(value: str, marker: str):
        # Cells arrive trimmed, so " - Machine " must also match at the end of the text
        pattern = r'(?:^|\s)' + re.escape(marker.strip()) + r'(?:\s+(?P<code>.*))?$'
        return re.search(pattern, value or '')

    @staticmethod
    def has_machine_marker(value: str, marker: str) -> bool:
        """Check whether value is a machine marker row, with or without a code."""
        return CellParser._machine_marker_match(value, marker) is not None

    @staticmethod
    def parse_machine_code(value: str, marker: str) -> Optional[str]:
        """Return the code after the machine marker, None when absent or empty."""
        match = CellParser._machine_marker_match(value, marker)
        if match is None:
            return None
        return (match.group('code') or '').strip() or None

    @staticmethod
    def parse_machine_info(value: str) -> Dict[str, Any]:
        """
        Parse "Name, Category (Type) (10/01/2025)".

        Every segment but the name is optional.

        Returns:
            Dict with machine_name, category, machine_type_name, run_date
        """
        info = {
            'machine_name': '',
            'category': None,
            'machine_type_name': None,
            'run_date': None,
        }
        if not value:
            return info

        remaining = value.strip()
        date_match = CellParser.MACHINE_INFO_DATE_PATTERN.search(remaining)
        if date_match:
            info['run_date'] = CellParser.parse_date(date_match.group(1))
            remaining = remaining[:date_match.start()].strip()

        type_match = CellParser.MACHINE_TYPE_PATTERN.search(remaining)
        if type_match:
            info['machine_type_name'] = type_match.group(1).strip()
            remaining = remaining[:type_match.start()].strip()

        segments = [segment.strip() for segment in remaining.split(',')]
        segments = [segment for segment in segments if segment]
        if segments:
            info['machine_name'] = segments[0]
            if len(segments) > 1:
                info['category'] = ', '.join(segments[1:])

        return info
