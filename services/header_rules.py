"""
Header detection for run workbook sheets.

Exports differ in column order and header wording, so columns are located by
matching header text against a rule table instead of fixed coordinates.
Supporting a new export format means adding rows to HEADER_RULES.
"""

import re
from typing import Dict, List, NamedTuple, Optional, Pattern

from services.cell_parser import CellParser


class HeaderRule(NamedTuple):
    """Maps header text matching `pattern` to a semantic field."""
    pattern: Pattern
    field: str


def _rule(pattern: str, field: str) -> HeaderRule:
    return HeaderRule(re.compile(pattern), field)


# Evaluated top to bottom; the first matching rule claims a column.
HEADER_RULES: List[HeaderRule] = [
    _rule(r'^machine (name|description|desc)$', 'machine_name'),
    _rule(r'^(machine|machine (code|id|no|number|#))$', 'machine_code'),
    _rule(r'^(coil|coil (code|id|no|number|#)|slot|selection|column)$', 'coil_code'),
    _rule(r'^(sku|product|item) (code|id|no|number|#)$', 'sku_code'),
    _rule(r'^(sku|product|item) (name|description|desc)$', 'sku_name'),
    _rule(r'^(sku|product|item) (type|category)$', 'sku_type'),
    _rule(r'^(sku|product|item)$', 'sku'),
    _rule(r'^(current|on hand|qty on hand|stock|current stock)$', 'current'),
    _rule(r'^(par|par level|capacity|max)$', 'par'),
    _rule(r'^(need|needed|to fill|fill|required)$', 'need'),
    _rule(r'^(forecast|forecasted|predicted)$', 'forecast'),
    _rule(r'^(total|pick|pick total|to pick)$', 'total'),
    _rule(r'^(notes?|comments?|remarks?)$', 'notes'),
]

SKU_FIELDS = ('sku', 'sku_code', 'sku_name')


def normalize_header(value) -> str:
    """Case-fold, collapse whitespace and strip punctuation around header text."""
    text = CellParser.normalize_string(value)
    if not text:
        return ''
    text = re.sub(r'[_\s]+', ' ', text.casefold())
    return text.strip(' :.*')


def match_header(value, rules: Optional[List[HeaderRule]] = None) -> Optional[str]:
    """Return the field a header cell maps to, or None."""
    text = normalize_header(value)
    if not text:
        return None
    for rule in rules or HEADER_RULES:
        if rule.pattern.match(text):
            return rule.field
    return None


def detect_columns(row, rules: Optional[List[HeaderRule]] = None) -> Dict[str, int]:
    """
    Map semantic fields to column indexes for a candidate header row.

    The first column claiming a field keeps it.

    Returns:
        Dict of field name -> 0-based column index
    """
    columns: Dict[str, int] = {}
    for idx, value in enumerate(row):
        field = match_header(value, rules)
        if field and field not in columns:
            columns[field] = idx
    return columns


def is_header_row(columns: Dict[str, int]) -> bool:
    """A header row must locate the coil column and at least one SKU column."""
    return 'coil_code' in columns and any(field in columns for field in SKU_FIELDS)
