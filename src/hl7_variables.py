"""
Template variables.

A template marks fill-in slots with the HELPERVARIABLE keyword, optionally
followed by a group number 1-999 (HELPERVARIABLE, HELPERVARIABLE1 ...
HELPERVARIABLE999). Every leaf carrying the same numbered token is the same
logical variable; a bare HELPERVARIABLE is a standalone slot.

Substitution never touches the parsed template: each output instance gets
a derived copy of the tree with its own values applied.
"""
import logging
import re
from typing import Dict, Iterator, List, Optional

from hl7_generator import generate_hl7_message
from hl7_models import (
    Hl7Field,
    Hl7Segment,
    InstanceOutput,
    SerializationInstance,
    UniqueVariable,
)

logger = logging.getLogger(__name__)

VARIABLE_PLACEHOLDER = "HELPERVARIABLE"
VARIABLE_PATTERN = re.compile(rf'\b{VARIABLE_PLACEHOLDER}([1-9]\d{{0,2}})?\b')


def contains_variable(value: Optional[str]) -> bool:
    return bool(value) and VARIABLE_PATTERN.search(value) is not None


def find_variable_tokens(value: Optional[str]) -> List[str]:
    """All variable tokens in a value, in order of appearance."""
    if not value:
        return []
    return [match.group(0) for match in VARIABLE_PATTERN.finditer(value)]


def extract_group_id(value: Optional[str]) -> Optional[int]:
    """The group number of the first token in `value`, or None for a standalone marker."""
    if not value:
        return None
    match = VARIABLE_PATTERN.search(value)
    if match and match.group(1):
        return int(match.group(1))
    return None


def get_variable_count(content: str) -> int:
    return len(find_variable_tokens(content))


def _leaf_values(field: Hl7Field) -> Iterator[str]:
    yield field.value
    for component in field.components:
        yield component.value
        for sub in component.sub_components:
            yield sub.value
    for repetition in field.repetitions or []:
        yield from _leaf_values(repetition)


def _first_variable_token(field: Hl7Field) -> Optional[str]:
    for value in _leaf_values(field):
        tokens = find_variable_tokens(value)
        if tokens:
            return tokens[0]
    return None


def field_contains_variable(field: Hl7Field) -> bool:
    """True when the field's value, components, subcomponents or repetitions hold a token."""
    return any(contains_variable(value) for value in _leaf_values(field))


def _with_variable_metadata(field: Hl7Field) -> Hl7Field:
    token = _first_variable_token(field)
    update = {
        "is_editable": token is not None,
        "variable_id": token,
        "variable_group_id": extract_group_id(token),
    }
    if field.repetitions is not None:
        update["repetitions"] = [_with_variable_metadata(rep) for rep in field.repetitions]
    return field.model_copy(update=update)


def apply_variable_editability(segments: List[Hl7Segment]) -> List[Hl7Segment]:
    """
    Returns a new tree where only fields carrying a variable are editable.

    Each field and repetition also gets `variable_id` (the first token in its
    subtree) and `variable_group_id`. Everything is recomputed from the
    values, so applying it twice gives the same result as applying it once.
    """
    return [
        seg.model_copy(update={"fields": [_with_variable_metadata(f) for f in seg.fields]})
        for seg in segments
    ]


def filter_segments_for_variables(segments: List[Hl7Segment]) -> List[Hl7Segment]:
    """Keeps only variable-bearing fields, dropping segments left without fields."""
    filtered = [
        seg.model_copy(update={"fields": [f for f in seg.fields if field_contains_variable(f)]})
        for seg in segments
    ]
    return [seg for seg in filtered if seg.fields]


def extract_unique_variables(segments: List[Hl7Segment]) -> List[UniqueVariable]:
    """
    Collects the distinct variables of a tree prepared by apply_variable_editability.

    Repeating fields are counted per repetition. The result is ordered by
    group id with standalone variables last.
    """
    variables: Dict[str, UniqueVariable] = {}

    def record(node: Hl7Field, field_position: str):
        if not node.variable_id:
            return
        existing = variables.get(node.variable_id)
        if existing is None:
            variables[node.variable_id] = UniqueVariable(
                variable_id=node.variable_id,
                group_id=node.variable_group_id,
                occurrence_count=1,
                field_positions=[field_position],
            )
            return
        existing.occurrence_count += 1
        if field_position not in existing.field_positions:
            existing.field_positions.append(field_position)

    for segment in segments:
        for field in segment.fields:
            field_position = f"{segment.name}-{field.position}"
            if field.repetitions:
                for repetition in field.repetitions:
                    record(repetition, field_position)
            else:
                record(field, field_position)

    return sorted(
        variables.values(),
        key=lambda v: (v.group_id is None, v.group_id or 0),
    )


def _substitute(field: Hl7Field, variable_values: Dict[str, str]) -> Hl7Field:
    update = {}
    if field.variable_id and field.variable_id in variable_values:
        update["value"] = variable_values[field.variable_id]
    if field.repetitions is not None:
        update["repetitions"] = [
            rep.model_copy(update={"value": variable_values[rep.variable_id]})
            if rep.variable_id and rep.variable_id in variable_values else rep
            for rep in field.repetitions
        ]
    # Components carry no variable metadata and are left as they are.
    return field.model_copy(update=update) if update else field


def substitute_variables(segments: List[Hl7Segment], variable_values: Dict[str, str]) -> List[Hl7Segment]:
    """Returns a derived tree with field and repetition values replaced by variable id."""
    return [
        seg.model_copy(update={"fields": [_substitute(f, variable_values) for f in seg.fields]})
        for seg in segments
    ]


def compute_instance_output(instance: SerializationInstance, segments: List[Hl7Segment]) -> InstanceOutput:
    """Applies an instance's values to the template tree and serializes the result."""
    substituted = substitute_variables(segments, instance.variable_values)
    serialized = generate_hl7_message(substituted)
    has_unfilled = VARIABLE_PLACEHOLDER in serialized
    if has_unfilled:
        logger.debug(f"Instance '{instance.name}' still has unfilled variables.")
    return InstanceOutput(
        instance_id=instance.id,
        segments=substituted,
        serialized_hl7=serialized,
        has_unfilled_variables=has_unfilled,
    )
