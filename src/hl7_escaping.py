"""
HL7 escape sequences.

    \\F\\  field separator        \\S\\  component separator
    \\R\\  repetition separator   \\T\\  subcomponent separator
    \\E\\  escape character

The escape character itself is taken from the message delimiters ('\\' by
default). unescape leaves sequences other than these five (\\H\\, \\X0D\\, ...)
as they are; escape then encodes their escape characters like any other
literal, so they do not survive a parse and regenerate round trip.
"""
import re
from functools import lru_cache
from typing import Dict, Optional, Pattern, Tuple

from hl7_models import DEFAULT_DELIMITERS, Hl7Delimiters


def _with_field_separator(field_separator: str, delimiters: Optional[Hl7Delimiters]) -> Hl7Delimiters:
    delimiters = delimiters or DEFAULT_DELIMITERS
    if delimiters.field == field_separator:
        return delimiters
    return delimiters.model_copy(update={"field": field_separator})


def _literal_map(delimiters: Hl7Delimiters) -> Dict[str, str]:
    return {
        'F': delimiters.field,
        'S': delimiters.component,
        'R': delimiters.repetition,
        'T': delimiters.subcomponent,
        'E': delimiters.escape,
    }


@lru_cache(maxsize=32)
def _unescape_pattern(escape_char: str) -> Pattern[str]:
    esc = re.escape(escape_char)
    return re.compile(f"{esc}([FSRTE]){esc}")


def unescape(text: str, field_separator: str = "|", delimiters: Optional[Hl7Delimiters] = None) -> str:
    """Replaces escape sequences with the literal characters they stand for."""
    if not text:
        return text
    delimiters = _with_field_separator(field_separator, delimiters)
    if delimiters.escape not in text:
        return text
    literals = _literal_map(delimiters)
    # One pass, so '\E\\F\' yields '\|' and not a re-scanned sequence.
    return _unescape_pattern(delimiters.escape).sub(lambda m: literals[m.group(1)], text)


def _escape_order(delimiters: Hl7Delimiters) -> Tuple[Tuple[str, str], ...]:
    esc = delimiters.escape
    return (
        (esc, f"{esc}E{esc}"),
        (delimiters.field, f"{esc}F{esc}"),
        (delimiters.component, f"{esc}S{esc}"),
        (delimiters.repetition, f"{esc}R{esc}"),
        (delimiters.subcomponent, f"{esc}T{esc}"),
    )


def escape(text: str, field_separator: str = "|", delimiters: Optional[Hl7Delimiters] = None) -> str:
    """Replaces separator characters with escape sequences."""
    if not text:
        return text
    delimiters = _with_field_separator(field_separator, delimiters)
    # The escape character must go first or the sequences inserted below get escaped again.
    for literal, sequence in _escape_order(delimiters):
        text = text.replace(literal, sequence)
    return text
