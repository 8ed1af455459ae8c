import logging
from typing import Callable, List

from hl7_models import Hl7Component, Hl7Field, Hl7Segment

logger = logging.getLogger(__name__)

# MSH-1 and MSH-2 hold the delimiters and are not user data.
STRUCTURAL_MSH_POSITIONS = (1, 2)


def is_structural_field(segment_name: str, position: int) -> bool:
    return segment_name == 'MSH' and position in STRUCTURAL_MSH_POSITIONS


def apply_structural_editability(segments: List[Hl7Segment]) -> List[Hl7Segment]:
    """Marks every field editable except MSH-1 and MSH-2."""
    return [
        seg.model_copy(update={
            "fields": [
                f.model_copy(update={"is_editable": not is_structural_field(seg.name, f.position)})
                for f in seg.fields
            ]
        })
        for seg in segments
    ]


def _replace_field(
    segments: List[Hl7Segment],
    segment_id: str,
    position: int,
    change: Callable[[Hl7Field], Hl7Field],
) -> List[Hl7Segment]:
    updated: List[Hl7Segment] = []
    found = False
    for seg in segments:
        if seg.id != segment_id:
            updated.append(seg)
            continue
        fields = []
        for f in seg.fields:
            if f.position == position:
                f = change(f)
                found = True
            fields.append(f)
        updated.append(seg.model_copy(update={"fields": fields}))

    if not found:
        logger.warning(f"No field at position {position} in segment '{segment_id}'. Tree left unchanged.")
        return segments
    return updated


def _segment_name(segments: List[Hl7Segment], segment_id: str) -> str:
    return next((seg.name for seg in segments if seg.id == segment_id), "")


def update_field_value(segments: List[Hl7Segment], segment_id: str, position: int, value: str) -> List[Hl7Segment]:
    """
    Returns a new tree where the addressed field is a simple field holding `value`.

    Components and repetitions are dropped so the edited value is what gets
    serialized. The input tree is not modified.
    """
    if is_structural_field(_segment_name(segments, segment_id), position):
        raise ValueError(f"MSH-{position} holds the message delimiters and cannot be edited.")

    return _replace_field(
        segments, segment_id, position,
        lambda f: f.model_copy(update={"value": value, "components": [], "repetitions": None}),
    )


def update_component_value(
    segments: List[Hl7Segment],
    segment_id: str,
    position: int,
    component_position: int,
    value: str,
) -> List[Hl7Segment]:
    """Returns a new tree with one component of a composite field replaced."""
    if is_structural_field(_segment_name(segments, segment_id), position):
        raise ValueError(f"MSH-{position} holds the message delimiters and cannot be edited.")

    def change(f: Hl7Field) -> Hl7Field:
        if not any(c.position == component_position for c in f.components):
            raise ValueError(f"Field {position} has no component {component_position}.")
        components = [
            Hl7Component(position=c.position, value=value) if c.position == component_position else c
            for c in f.components
        ]
        return f.model_copy(update={"components": components})

    return _replace_field(segments, segment_id, position, change)
