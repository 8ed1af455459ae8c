import pytest
from hl7_generator import Hl7Generator, generate_hl7_message
from hl7_models import Hl7Component, Hl7Field, Hl7Message, Hl7Segment

pytestmark = pytest.mark.unit

@pytest.fixture
def msh_segment() -> Hl7Segment:
    return Hl7Segment(id="seg-0", name="MSH", fields=[
        Hl7Field(position=1, value="|"),
        Hl7Field(position=2, value="^~\\&"),
        Hl7Field(position=3, value="App"),
        Hl7Field(position=4, value="Fac"),
    ])

@pytest.fixture
def pid_segment() -> Hl7Segment:
    return Hl7Segment(id="seg-1", name="PID", fields=[
        Hl7Field(position=1, value="1"),
        Hl7Field(position=2, value=""),
        Hl7Field(position=3, value="ignored", repetitions=[
            Hl7Field(position=3, value="ID1"),
            Hl7Field(position=3, value="ID2^MR", components=[
                Hl7Component(position=1, value="ID2"),
                Hl7Component(position=2, value="MR"),
            ]),
        ]),
        Hl7Field(position=4, value="stale", components=[
            Hl7Component(position=1, value="Doe"),
            Hl7Component(position=2, value="A&B", sub_components=[
                Hl7Component(position=1, value="A"),
                Hl7Component(position=2, value="B|C"),
            ]),
        ]),
        Hl7Field(position=5, value="x^y"),
    ])

def test_generate_empty_message():
    """Tests that an empty tree generates empty text."""
    assert generate_hl7_message([]) == ""
    assert generate_hl7_message(Hl7Message()) == ""

def test_generate_msh_skips_synthetic_field_separator(msh_segment):
    """Tests that MSH-1 is not written as a field of its own."""
    assert generate_hl7_message([msh_segment]) == "MSH|^~\\&|App|Fac"

def test_msh_2_is_not_escaped(msh_segment):
    """Tests that MSH-2 is written without escaping."""
    result = Hl7Generator().generate([msh_segment])
    assert "\\E\\" not in result
    assert "\\S\\" not in result

def test_field_serialization_precedence(pid_segment):
    """Tests that repetitions win over components and components over value."""
    result = generate_hl7_message([pid_segment])
    # Repetitions win over value, components win over value, simple values are escaped.
    assert result == "PID|1||ID1~ID2^MR|Doe^A&B\\F\\C|x\\S\\y"

def test_segments_joined_with_carriage_return(msh_segment, pid_segment):
    """Tests that segments are joined with '\\r'."""
    result = generate_hl7_message(Hl7Message(segments=[msh_segment, pid_segment]))
    assert result.count("\r") == 1
    assert result.startswith("MSH|^~\\&|App|Fac\rPID|1|")

def test_custom_separator_from_msh_1(msh_segment, pid_segment):
    """Tests that the generator uses the separator stored in MSH-1."""
    msh = msh_segment.model_copy(update={
        "fields": [Hl7Field(position=1, value="$")] + msh_segment.fields[1:]
    })
    result = generate_hl7_message([msh, pid_segment])
    assert result.startswith("MSH$^~\\&$App$Fac\rPID$1$$")
    # A literal '|' is plain data under '$'.
    assert "B|C" in result

def test_invalid_msh_1_defaults_to_pipe(msh_segment):
    """Tests that an unusable MSH-1 value generates with '|'."""
    msh = msh_segment.model_copy(update={
        "fields": [Hl7Field(position=1, value="AB")] + msh_segment.fields[1:]
    })
    assert generate_hl7_message([msh]) == "MSH|^~\\&|App|Fac"

def test_segment_without_fields_is_bare_name():
    """Tests that a segment without fields is written as its name."""
    assert generate_hl7_message([Hl7Segment(id="seg-0", name="EVN")]) == "EVN"

def test_values_with_escape_character_are_escaped():
    """Tests that a literal escape character is written as \\E\\."""
    segment = Hl7Segment(id="seg-0", name="NTE", fields=[Hl7Field(position=1, value="C:\\temp")])
    assert generate_hl7_message([segment]) == "NTE|C:\\E\\temp"

def test_generator_does_not_mutate_tree(pid_segment):
    """Tests that generating leaves the tree unchanged."""
    before = pid_segment.model_dump()
    generate_hl7_message([pid_segment])
    assert pid_segment.model_dump() == before
