import logging
import re
from typing import Dict, List, Optional

from hl7_models import Hl7Segment, InstanceOutput, SerializationInstance, UniqueVariable
from hl7_parser import parse_hl7_message
from hl7_variables import apply_variable_editability, compute_instance_output, extract_unique_variables

logger = logging.getLogger(__name__)

MAX_INSTANCES = 20
MIN_INSTANCES = 1

_INSTANCE_NAME_PATTERN = re.compile(r'^Instance (\d+)')


def get_next_instance_number(instances: List[SerializationInstance]) -> int:
    """One more than the highest 'Instance N' name in use, starting at 1."""
    numbers = []
    for instance in instances:
        match = _INSTANCE_NAME_PATTERN.match(instance.name)
        if match and int(match.group(1)) > 0:
            numbers.append(int(match.group(1)))
    return max(numbers) + 1 if numbers else 1


def create_default_instance(
    unique_variables: List[UniqueVariable],
    existing_instances: Optional[List[SerializationInstance]] = None,
) -> SerializationInstance:
    """
    Creates a new instance whose values are the variable tokens themselves,
    so its output starts out identical to the template.
    """
    instance_number = get_next_instance_number(existing_instances or [])
    return SerializationInstance(
        name=f"Instance {instance_number}",
        variable_values={v.variable_id: v.variable_id for v in unique_variables},
    )


def duplicate_instance(instance: SerializationInstance, new_name: Optional[str] = None) -> SerializationInstance:
    return SerializationInstance(
        name=new_name or f"{instance.name} (copy)",
        variable_values=dict(instance.variable_values),
    )


def instance_has_modified_values(instance: SerializationInstance, unique_variables: List[UniqueVariable]) -> bool:
    for variable in unique_variables:
        current = instance.variable_values.get(variable.variable_id)
        if current and current != variable.variable_id:
            return True
    return False


def format_all_outputs_for_copy(outputs: List[InstanceOutput]) -> str:
    """Raw HL7 of every output separated by a blank line. HL7 has no comment syntax."""
    return "\n\n".join(output.serialized_hl7 for output in outputs)


class SerializationSession:
    """
    Produces several filled messages from one template.

    The session owns the parsed template tree and a list of instances, each
    an independent variable map. Instance operations replace instances in the
    list and never touch the template tree.
    """

    def __init__(self, max_instances: int = MAX_INSTANCES):
        self.max_instances = max_instances
        self.template_id: str = ""
        self.template_content: str = ""
        self.segments: List[Hl7Segment] = []
        self.unique_variables: List[UniqueVariable] = []
        self.instances: List[SerializationInstance] = []

    def set_template(self, content: str, template_id: str = "") -> SerializationInstance:
        """Parses a template, collects its variables and starts over with one instance."""
        message = parse_hl7_message(content)
        self.template_id = template_id
        self.template_content = content
        self.segments = apply_variable_editability(message.segments)
        self.unique_variables = extract_unique_variables(self.segments)
        first = create_default_instance(self.unique_variables)
        self.instances = [first]
        logger.info(f"Template '{template_id}' loaded with {len(self.unique_variables)} unique variables.")
        return first

    def get_instance(self, instance_id: str) -> Optional[SerializationInstance]:
        return next((i for i in self.instances if i.id == instance_id), None)

    def add_instance(self) -> Optional[SerializationInstance]:
        if len(self.instances) >= self.max_instances:
            logger.warning(f"Instance limit of {self.max_instances} reached. Not adding another.")
            return None
        instance = create_default_instance(self.unique_variables, self.instances)
        self.instances = [*self.instances, instance]
        return instance

    def remove_instance(self, instance_id: str) -> bool:
        if len(self.instances) <= MIN_INSTANCES:
            logger.warning("Cannot remove the last remaining instance.")
            return False
        remaining = [i for i in self.instances if i.id != instance_id]
        removed = len(remaining) != len(self.instances)
        self.instances = remaining
        return removed

    def duplicate_instance(self, instance_id: str, new_name: Optional[str] = None) -> Optional[SerializationInstance]:
        """Copies an instance and inserts the copy right after the original."""
        if len(self.instances) >= self.max_instances:
            logger.warning(f"Instance limit of {self.max_instances} reached. Not duplicating.")
            return None
        index = next((idx for idx, i in enumerate(self.instances) if i.id == instance_id), None)
        if index is None:
            return None
        duplicate = duplicate_instance(self.instances[index], new_name)
        self.instances = [*self.instances[:index + 1], duplicate, *self.instances[index + 1:]]
        return duplicate

    def _replace_instance(self, instance_id: str, **update) -> bool:
        found = False
        instances = []
        for instance in self.instances:
            if instance.id == instance_id:
                instance = instance.model_copy(update=update)
                found = True
            instances.append(instance)
        self.instances = instances
        return found

    def update_variable(self, instance_id: str, variable_id: str, value: str) -> bool:
        """Sets one variable for one instance; every leaf sharing the token follows."""
        instance = self.get_instance(instance_id)
        if instance is None:
            return False
        values: Dict[str, str] = {**instance.variable_values, variable_id: value}
        return self._replace_instance(instance_id, variable_values=values)

    def toggle_expand(self, instance_id: str) -> bool:
        instance = self.get_instance(instance_id)
        if instance is None:
            return False
        return self._replace_instance(instance_id, is_expanded=not instance.is_expanded)

    def reset_instances(self) -> SerializationInstance:
        first = create_default_instance(self.unique_variables)
        self.instances = [first]
        return first

    def outputs(self) -> List[InstanceOutput]:
        return [compute_instance_output(instance, self.segments) for instance in self.instances]
