import logging
import re
from typing import List, Optional

from hl7_models import DEFAULT_DELIMITERS, Hl7Delimiters, Hl7Segment

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(r'\r\n|\n|\r')


def is_valid_separator(candidate: Optional[str]) -> bool:
    """A separator must be one printable, non-alphanumeric character."""
    if not candidate or len(candidate) != 1:
        return False
    if candidate in ('\r', '\n'):
        return False
    if ord(candidate) < 0x20 or ord(candidate) == 0x7F:
        return False
    return not candidate.isalnum()


def _field_separator_from_line(line: str) -> str:
    candidate = line[3] if len(line) > 3 else None
    if is_valid_separator(candidate):
        return candidate
    logger.warning(f"Invalid field separator {candidate!r} in MSH segment. Falling back to '|'.")
    return DEFAULT_DELIMITERS.field


def _default_encoding(field_separator: str) -> Hl7Delimiters:
    """Default encoding characters, keeping the field separator unless it clashes with them."""
    if field_separator in DEFAULT_DELIMITERS.encoding_characters:
        logger.warning(f"Field separator {field_separator!r} clashes with the default encoding characters. Using '|^~\\&'.")
        return DEFAULT_DELIMITERS
    return DEFAULT_DELIMITERS.model_copy(update={"field": field_separator})


def _encoding_characters(encoding: Optional[str], field_separator: str) -> Hl7Delimiters:
    """Builds delimiters from an MSH-2 value, or the defaults if it cannot be trusted."""
    if encoding is None or len(encoding) < 4:
        logger.debug(f"MSH-2 {encoding!r} too short. Using default encoding characters.")
        return _default_encoding(field_separator)

    component, repetition, escape_char, subcomponent = encoding[:4]
    chars = [field_separator, component, repetition, escape_char, subcomponent]
    if not all(is_valid_separator(c) for c in chars) or len(set(chars)) != len(chars):
        logger.warning(f"Invalid encoding characters {encoding!r} in MSH-2. Using '^~\\&'.")
        return _default_encoding(field_separator)

    return Hl7Delimiters(
        field=field_separator,
        component=component,
        repetition=repetition,
        escape=escape_char,
        subcomponent=subcomponent,
    )


def _find_msh_line(lines: List[str]) -> Optional[str]:
    return next((line for line in lines if line.startswith('MSH')), None)


def resolve_field_separator(raw_text: str) -> str:
    """Returns the field separator declared at index 3 of the MSH line, or '|'."""
    msh_line = _find_msh_line(_LINE_SPLIT.split(raw_text or ""))
    if msh_line is None:
        return DEFAULT_DELIMITERS.field
    return _field_separator_from_line(msh_line)


def resolve_delimiters(raw_text: str) -> Hl7Delimiters:
    """
    Detects all delimiters from the MSH header of a raw message.

    The field separator comes from MSH-1 (the character after 'MSH'), the
    encoding characters from MSH-2 in the order component, repetition,
    escape, subcomponent. Anything missing or invalid falls back to '|^~\\&'.
    """
    msh_line = _find_msh_line(_LINE_SPLIT.split(raw_text or ""))
    if msh_line is None:
        logger.debug("No MSH segment found. Using default delimiters '|^~\\&'.")
        return DEFAULT_DELIMITERS

    field_separator = _field_separator_from_line(msh_line)
    tokens = msh_line.split(field_separator)
    encoding = tokens[1] if len(tokens) > 1 else None
    delimiters = _encoding_characters(encoding, field_separator)
    logger.debug(f"Delimiters detected: Field='{delimiters.field}', Encoding='{delimiters.encoding_characters}'")
    return delimiters


def delimiters_from_segments(segments: List[Hl7Segment]) -> Hl7Delimiters:
    """Re-derives delimiters from a tree's own MSH-1 and MSH-2 fields."""
    msh = next((segment for segment in segments if segment.name == 'MSH'), None)
    if msh is None:
        return DEFAULT_DELIMITERS

    field_separator = msh.get_field_value(1)
    if not is_valid_separator(field_separator):
        field_separator = DEFAULT_DELIMITERS.field
    return _encoding_characters(msh.get_field_value(2), field_separator)
