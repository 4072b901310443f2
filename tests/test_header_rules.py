"""
Tests for header detection.
"""

import re
from services.header_rules import (
    HEADER_RULES, HeaderRule, detect_columns, is_header_row, match_header, normalize_header
)


class TestMatchHeader:
    """Test header text matching."""

    def test_normalization(self):
        """Case, underscores, spacing and trailing punctuation are ignored."""
        assert normalize_header('  Coil_Code: ') == 'coil code'
        assert normalize_header('PAR*') == 'par'
        assert normalize_header(None) == ''

    def test_synonyms(self):
        """Export variants map to the same field."""
        assert match_header('Coil') == 'coil_code'
        assert match_header('Slot') == 'coil_code'
        assert match_header('Product') == 'sku'
        assert match_header('Item Code') == 'sku_code'
        assert match_header('Product Name') == 'sku_name'
        assert match_header('On Hand') == 'current'
        assert match_header('Capacity') == 'par'
        assert match_header('To Fill') == 'need'
        assert match_header('Comments') == 'notes'

    def test_machine_name_and_code(self):
        """'Machine' alone is the code column."""
        assert match_header('Machine') == 'machine_code'
        assert match_header('Machine Name') == 'machine_name'

    def test_unknown_header(self):
        """Unrecognized headers map to nothing."""
        assert match_header('Colour') is None
        assert match_header('') is None


class TestDetectColumns:
    """Test column detection on candidate header rows."""

    def test_any_column_order(self):
        """Columns are found regardless of position."""
        columns = detect_columns(['Need', 'Par', 'Product', None, 'Coil'])
        assert columns == {'need': 0, 'par': 1, 'sku': 2, 'coil_code': 4}
        assert is_header_row(columns)

    def test_first_claim_wins(self):
        """A repeated header keeps its first column."""
        columns = detect_columns(['Coil', 'Product', 'Slot'])
        assert columns['coil_code'] == 0

    def test_header_requires_coil_and_sku(self):
        """A row with quantities but no coil or SKU column is not a header."""
        assert not is_header_row(detect_columns(['Par', 'Need', 'Current']))
        assert not is_header_row(detect_columns(['Coil', 'Par']))
        assert is_header_row(detect_columns(['Coil', 'SKU Code']))

    def test_custom_rules(self):
        """Callers can extend the rule table."""
        rules = [HeaderRule(re.compile(r'^spiral$'), 'coil_code')] + HEADER_RULES
        columns = detect_columns(['Spiral', 'Product'], rules)
        assert is_header_row(columns)
        assert columns['coil_code'] == 0
