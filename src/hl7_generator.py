import logging
from typing import List, Sequence, Union

from hl7_delimiters import delimiters_from_segments
from hl7_escaping import escape
from hl7_models import FieldKind, Hl7Component, Hl7Delimiters, Hl7Field, Hl7Message, Hl7Segment

logger = logging.getLogger(__name__)

SEGMENT_TERMINATOR = "\r"


class Hl7Generator:
    """
    Serializes a message tree back to HL7 wire text.

    Delimiters are re-derived from the tree's own MSH-1/MSH-2 fields, so a
    message parsed with a custom separator is written back with it. Output
    always uses '\\r' between segments.
    """

    def generate(self, message: Union[Hl7Message, Sequence[Hl7Segment]]) -> str:
        segments = message.segments if isinstance(message, Hl7Message) else list(message)
        if not segments:
            return ""

        delimiters = delimiters_from_segments(segments)
        logger.debug(f"Generating {len(segments)} segments with delimiters '{delimiters.field}{delimiters.encoding_characters}'")
        return SEGMENT_TERMINATOR.join(self._serialize_segment(segment, delimiters) for segment in segments)

    def _serialize_segment(self, segment: Hl7Segment, delimiters: Hl7Delimiters) -> str:
        sep = delimiters.field
        if segment.name == 'MSH':
            # MSH-1 is implied by the separator after the name; MSH-2 is written verbatim.
            msh_fields = [
                (field.value or "") if idx == 0 else self._serialize_field(field, delimiters)
                for idx, field in enumerate(segment.fields[1:])
            ]
            return f"MSH{sep}{sep.join(msh_fields)}"

        if not segment.fields:
            return segment.name
        fields = [self._serialize_field(field, delimiters) for field in segment.fields]
        return f"{segment.name}{sep}{sep.join(fields)}"

    def _escape(self, value: str, delimiters: Hl7Delimiters) -> str:
        return escape(value or "", delimiters.field, delimiters)

    def _serialize_component(self, component: Hl7Component, delimiters: Hl7Delimiters) -> str:
        if component.sub_components:
            return delimiters.subcomponent.join(self._escape(s.value, delimiters) for s in component.sub_components)
        return self._escape(component.value, delimiters)

    def _serialize_components(self, components: List[Hl7Component], delimiters: Hl7Delimiters) -> str:
        return delimiters.component.join(self._serialize_component(c, delimiters) for c in components)

    def _serialize_repetition(self, repetition: Hl7Field, delimiters: Hl7Delimiters) -> str:
        if repetition.components:
            return self._serialize_components(repetition.components, delimiters)
        return self._escape(repetition.value, delimiters)

    def _serialize_field(self, field: Hl7Field, delimiters: Hl7Delimiters) -> str:
        kind = field.kind
        if kind is FieldKind.REPEATING:
            return delimiters.repetition.join(self._serialize_repetition(r, delimiters) for r in field.repetitions)
        if kind is FieldKind.COMPOSITE:
            return self._serialize_components(field.components, delimiters)
        return self._escape(field.value, delimiters)


def generate_hl7_message(message: Union[Hl7Message, Sequence[Hl7Segment]]) -> str:
    """Serializes segments (or a whole message) to '\\r'-terminated HL7 text."""
    return Hl7Generator().generate(message)
