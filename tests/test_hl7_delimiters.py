import pytest
from hl7_delimiters import (
    delimiters_from_segments,
    is_valid_separator,
    resolve_delimiters,
    resolve_field_separator,
)
from hl7_generator import generate_hl7_message
from hl7_models import DEFAULT_DELIMITERS, Hl7Field, Hl7Segment
from hl7_parser import parse_hl7_message

pytestmark = pytest.mark.unit

class TestResolveFieldSeparator:
    """Test cases for field separator detection."""

    def test_standard_pipe(self):
        """Test that the standard '|' separator is detected."""
        assert resolve_field_separator("MSH|^~\\&|App") == "|"

    def test_custom_separator(self):
        """Test that a custom separator after 'MSH' is used."""
        assert resolve_field_separator("MSH$^~\\&$App") == "$"

    def test_msh_not_on_first_line(self):
        """Test that the first MSH line is found even after other lines."""
        assert resolve_field_separator("\nFHS#x\nMSH#^~\\&#App") == "#"

    def test_no_msh_defaults_to_pipe(self):
        """Test that text without MSH falls back to '|'."""
        assert resolve_field_separator("PID*1*2") == "|"

    def test_empty_text_defaults_to_pipe(self):
        """Test that empty text falls back to '|'."""
        assert resolve_field_separator("") == "|"

    @pytest.mark.parametrize("line", ["MSHA^~\\&", "MSH1^~\\&", "MSH", "MSH\t^~\\&", "MSH\x01^~"])
    def test_invalid_candidates_default_to_pipe(self, line):
        """Test that alphanumeric, control or missing separators fall back to '|'."""
        assert resolve_field_separator(line) == "|"

@pytest.mark.parametrize("candidate,expected", [
    ("|", True), ("$", True), ("#", True),
    ("A", False), ("7", False), ("\r", False), ("\n", False),
    ("\x00", False), ("\x1f", False), ("\x7f", False),
    ("", False), (None, False), ("||", False),
])
def test_is_valid_separator(candidate, expected):
    """Test the separator validity rule."""
    assert is_valid_separator(candidate) is expected

class TestResolveDelimiters:
    """Test cases for full delimiter detection from MSH-1 and MSH-2."""

    def test_standard_delimiters(self):
        """Test detection of the standard '|^~\\&' set."""
        delimiters = resolve_delimiters("MSH|^~\\&|App")
        assert delimiters.field == "|"
        assert delimiters.encoding_characters == "^~\\&"

    def test_truncation_character_is_ignored(self):
        """Test that a fifth encoding character is ignored."""
        delimiters = resolve_delimiters("MSH|^~\\&#|App")
        assert delimiters.encoding_characters == "^~\\&"

    def test_custom_encoding_characters(self):
        """Test that MSH-2 supplies component, repetition, escape and subcomponent in order."""
        delimiters = resolve_delimiters("MSH|!@#%|App")
        assert (delimiters.component, delimiters.repetition, delimiters.escape, delimiters.subcomponent) == ("!", "@", "#", "%")

    @pytest.mark.parametrize("encoding", ["", "^~", "^^\\&", "^~|&", "ab\\&"])
    def test_unusable_encoding_characters_fall_back(self, encoding):
        """Test that short, repeated or alphanumeric MSH-2 values give the defaults."""
        delimiters = resolve_delimiters(f"MSH|{encoding}|App")
        assert delimiters.field == "|"
        assert delimiters.encoding_characters == "^~\\&"

    def test_fallback_keeps_custom_field_separator(self):
        """Test that a rejected MSH-2 keeps a field separator that does not clash."""
        delimiters = resolve_delimiters("MSH$ab$App")
        assert delimiters.field == "$"
        assert delimiters.encoding_characters == "^~\\&"

    @pytest.mark.parametrize("separator", ["^", "~", "\\", "&"])
    def test_fallback_with_clashing_field_separator(self, separator):
        """Test that a field separator equal to a default encoding character falls back to '|' too."""
        delimiters = resolve_delimiters(f"MSH{separator}{separator}x|A")
        assert delimiters == DEFAULT_DELIMITERS
        assert len(set(delimiters.field + delimiters.encoding_characters)) == 5

    def test_clashing_field_separator_round_trips(self):
        """Test that a message with a clashing separator regenerates unchanged."""
        original = "MSH^^~\\&|A"
        assert generate_hl7_message(parse_hl7_message(original)) == original

    def test_missing_msh_gives_defaults(self):
        """Test that text without MSH gives the default delimiters."""
        delimiters = resolve_delimiters("PID|1")
        assert delimiters.field == "|"
        assert delimiters.encoding_characters == "^~\\&"

class TestDelimitersFromSegments:
    """Test cases for re-deriving delimiters from a parsed tree."""

    def _msh(self, separator: str, encoding: str) -> Hl7Segment:
        return Hl7Segment(id="seg-0", name="MSH", fields=[
            Hl7Field(position=1, value=separator),
            Hl7Field(position=2, value=encoding),
        ])

    def test_uses_msh_1_and_msh_2(self):
        """Test that MSH-1 and MSH-2 of the tree are used."""
        delimiters = delimiters_from_segments([self._msh("$", "^~\\&")])
        assert delimiters.field == "$"
        assert delimiters.component == "^"

    def test_invalid_msh_1_defaults_to_pipe(self):
        """Test that an unusable MSH-1 value falls back to '|'."""
        assert delimiters_from_segments([self._msh("X", "^~\\&")]).field == "|"

    def test_clashing_msh_1_with_empty_msh_2(self):
        """Test that an MSH-1 of '^' with no usable MSH-2 gives the full defaults."""
        assert delimiters_from_segments([self._msh("^", "")]) == DEFAULT_DELIMITERS

    def test_no_msh_gives_defaults(self):
        """Test that a tree without MSH gives the default delimiters."""
        delimiters = delimiters_from_segments([Hl7Segment(id="seg-0", name="PID")])
        assert delimiters.field == "|"
