import logging
import re
from typing import List, Optional

from hl7_delimiters import resolve_delimiters
from hl7_escaping import unescape
from hl7_models import Hl7Component, Hl7Field, Hl7Message, Hl7ParseWarning, Hl7Segment

logger = logging.getLogger(__name__)

SEGMENT_NAME_PATTERN = re.compile(r'^[A-Z][A-Z0-9]{2}$')
# \r\n must be tried before \r so Windows line endings do not yield blank lines.
SEGMENT_TERMINATOR_PATTERN = re.compile(r'\r\n|\n|\r')


def split_segments(raw_text: str) -> List[str]:
    """Splits raw text into non-blank segment lines."""
    if not raw_text:
        return []
    return [line for line in SEGMENT_TERMINATOR_PATTERN.split(raw_text) if line.strip()]


class Hl7Parser:
    """
    Best-effort parser for HL7 v2.x pipe-delimited messages.

    Never raises on malformed input: bad segment names and missing headers are
    recorded as warnings on the returned message and the tree is built anyway.
    """

    def __init__(self, raw_text: str):
        self.raw_text = raw_text or ""
        self.warnings: List[Hl7ParseWarning] = []

        # Delimiters are resolved once, from the whole message.
        self.delimiters = resolve_delimiters(self.raw_text)
        self.lines = split_segments(self.raw_text)
        logger.debug(f"Parser initialized with {len(self.lines)} segment lines.")

    def _unescape(self, value: str) -> str:
        return unescape(value, self.delimiters.field, self.delimiters)

    def _warn(self, message: str, line_number: Optional[int] = None, segment_name: Optional[str] = None):
        logger.warning(message)
        self.warnings.append(Hl7ParseWarning(message=message, line_number=line_number, segment_name=segment_name))

    def _parse_component(self, raw_value: str, position: int) -> Hl7Component:
        if self.delimiters.subcomponent in raw_value:
            sub_components = [
                Hl7Component(position=idx + 1, value=self._unescape(sub_value))
                for idx, sub_value in enumerate(raw_value.split(self.delimiters.subcomponent))
            ]
            return Hl7Component(position=position, value=raw_value, sub_components=sub_components)
        return Hl7Component(position=position, value=self._unescape(raw_value))

    def _parse_components(self, raw_value: str) -> List[Hl7Component]:
        return [
            self._parse_component(comp_value, idx + 1)
            for idx, comp_value in enumerate(raw_value.split(self.delimiters.component))
        ]

    def _parse_repetition(self, raw_value: str, position: int) -> Hl7Field:
        if self.delimiters.component in raw_value:
            return Hl7Field(position=position, value=raw_value, components=self._parse_components(raw_value))
        return Hl7Field(position=position, value=self._unescape(raw_value))

    def _parse_field(self, raw_value: str, position: int) -> Hl7Field:
        if self.delimiters.repetition in raw_value:
            repetitions = [
                self._parse_repetition(rep_value, position)
                for rep_value in raw_value.split(self.delimiters.repetition)
            ]
            return Hl7Field(position=position, value=raw_value, repetitions=repetitions)

        if self.delimiters.component in raw_value:
            # The raw value is kept; the generator serializes from the components.
            return Hl7Field(position=position, value=raw_value, components=self._parse_components(raw_value))

        return Hl7Field(position=position, value=self._unescape(raw_value))

    def _parse_msh_fields(self, tokens: List[str]) -> List[Hl7Field]:
        fields = [
            Hl7Field(position=1, value=self.delimiters.field, is_editable=False),
            # MSH-2 holds the encoding characters and is never unescaped.
            Hl7Field(position=2, value=tokens[1] if len(tokens) > 1 else "", is_editable=False),
        ]
        fields.extend(self._parse_field(value, idx + 3) for idx, value in enumerate(tokens[2:]))
        return fields

    def _parse_segment(self, line: str, index: int) -> Hl7Segment:
        tokens = line.split(self.delimiters.field)
        segment_name = tokens[0]

        if not SEGMENT_NAME_PATTERN.match(segment_name):
            self._warn(
                f"Invalid HL7 segment name \"{segment_name}\" on line {index + 1}. "
                f"Expected 3 uppercase alphanumeric characters starting with a letter.",
                line_number=index + 1,
                segment_name=segment_name,
            )

        if segment_name == 'MSH':
            fields = self._parse_msh_fields(tokens)
        else:
            fields = [self._parse_field(value, idx + 1) for idx, value in enumerate(tokens[1:])]

        logger.debug(f"  [SEGMENT {index + 1}/{len(self.lines)}] '{segment_name}' with {len(fields)} fields")
        return Hl7Segment(id=f"seg-{index}", name=segment_name, fields=fields)

    def parse(self) -> Hl7Message:
        self.warnings = []
        segments = [self._parse_segment(line, idx) for idx, line in enumerate(self.lines)]

        if segments and not any(segment.name == 'MSH' for segment in segments):
            self._warn("No MSH segment found. Default delimiters '|^~\\&' were used.")

        if self.warnings:
            logger.info(f"Parsed {len(segments)} segments with {len(self.warnings)} warnings.")
        else:
            logger.debug(f"Parsed {len(segments)} segments.")

        return Hl7Message(segments=segments, warnings=list(self.warnings), delimiters=self.delimiters)


def parse_hl7_message(raw_text: str) -> Hl7Message:
    """Parses raw HL7 text into a message tree. Empty input gives an empty message."""
    return Hl7Parser(raw_text).parse()
