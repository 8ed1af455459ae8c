import time
import uuid
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Tree model for a parsed HL7 v2.x message.
# Message -> Segment -> Field -> (Repetition) -> Component -> SubComponent.
# Attributes are snake_case in Python and camelCase when dumped with by_alias=True.

_MODEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldKind(str, Enum):
    SIMPLE = "simple"
    COMPOSITE = "composite"
    REPEATING = "repeating"


class Hl7Delimiters(BaseModel):
    """The five structural characters of a message (MSH-1 plus MSH-2)."""
    model_config = _MODEL_CONFIG

    field: str = "|"
    component: str = "^"
    repetition: str = "~"
    escape: str = "\\"
    subcomponent: str = "&"

    @property
    def encoding_characters(self) -> str:
        """The MSH-2 representation, e.g. '^~\\&'."""
        return f"{self.component}{self.repetition}{self.escape}{self.subcomponent}"


DEFAULT_DELIMITERS = Hl7Delimiters()


class Hl7ParseWarning(BaseModel):
    """A non-fatal problem found while parsing."""
    model_config = _MODEL_CONFIG

    message: str
    line_number: Optional[int] = None
    segment_name: Optional[str] = None


class Hl7Component(BaseModel):
    """A component, or a subcomponent when nested one level deeper."""
    model_config = _MODEL_CONFIG

    position: int
    value: str = ""
    sub_components: List['Hl7Component'] = Field(default_factory=list)


class Hl7Field(BaseModel):
    """
    A segment field. Exactly one of three shapes:
    simple (value only), composite (components) or repeating (repetitions).
    Repetitions win over components, components win over value.
    """
    model_config = _MODEL_CONFIG

    position: int
    value: str = ""
    is_editable: bool = False
    components: List[Hl7Component] = Field(default_factory=list)
    repetitions: Optional[List['Hl7Field']] = None
    variable_id: Optional[str] = None
    variable_group_id: Optional[int] = None

    @property
    def kind(self) -> FieldKind:
        if self.repetitions:
            return FieldKind.REPEATING
        if self.components:
            return FieldKind.COMPOSITE
        return FieldKind.SIMPLE


class Hl7Segment(BaseModel):
    """A single line of a message."""
    model_config = _MODEL_CONFIG

    id: str
    name: str
    fields: List[Hl7Field] = Field(default_factory=list)

    def get_field(self, position: int) -> Optional[Hl7Field]:
        """Retrieves a field by its 1-based HL7 position."""
        return next((f for f in self.fields if f.position == position), None)

    def get_field_value(self, position: int) -> Optional[str]:
        field = self.get_field(position)
        return field.value if field else None


class Hl7Message(BaseModel):
    model_config = _MODEL_CONFIG

    segments: List[Hl7Segment] = Field(default_factory=list)
    warnings: List[Hl7ParseWarning] = Field(default_factory=list)
    delimiters: Hl7Delimiters = Field(default_factory=Hl7Delimiters)

    def get_segment(self, name: str) -> Optional[Hl7Segment]:
        return next((segment for segment in self.segments if segment.name == name), None)


Hl7Component.model_rebuild()
Hl7Field.model_rebuild()


# --- Template variables and output instances ---

def create_instance_id() -> str:
    return f"instance-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class UniqueVariable(BaseModel):
    """A distinct variable token found in a template, with where it occurs."""
    model_config = _MODEL_CONFIG

    variable_id: str
    group_id: Optional[int] = None
    occurrence_count: int = 0
    field_positions: List[str] = Field(default_factory=list)  # e.g. ["PV1-1", "PV1-3"]


class SerializationInstance(BaseModel):
    """One fill-in of a template: a named map of variable id -> value."""
    model_config = _MODEL_CONFIG

    id: str = Field(default_factory=create_instance_id)
    name: str
    variable_values: Dict[str, str] = Field(default_factory=dict)
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000))
    is_expanded: bool = True


class InstanceOutput(BaseModel):
    model_config = _MODEL_CONFIG

    instance_id: str
    segments: List[Hl7Segment]
    serialized_hl7: str
    has_unfilled_variables: bool
