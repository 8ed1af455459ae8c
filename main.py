#!/usr/bin/env python3
"""
HL7 Message Tool

Parses HL7 v2.x messages to JSON, regenerates wire text, and fills
HELPERVARIABLE templates.

Usage:
    python main.py message.hl7                                   # Parse to message.json
    python main.py message.hl7 tree.json                         # Parse to a specific output file
    python main.py message.hl7 --regenerate out.hl7              # Also write regenerated HL7
    python main.py template.hl7 filled.hl7 --variables vars.json  # Fill a template
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Try importing from installed package first, fallback to src path
try:
    from hl7_generator import generate_hl7_message
    from hl7_parser import parse_hl7_message
    from serialization_instances import SerializationSession, format_all_outputs_for_copy
    from validation_service import Hl7ValidationService
except ImportError:
    # Add src to path for imports when not installed
    sys.path.insert(0, str(Path(__file__).parent / "src"))
    from hl7_generator import generate_hl7_message
    from hl7_parser import parse_hl7_message
    from serialization_instances import SerializationSession, format_all_outputs_for_copy
    from validation_service import Hl7ValidationService

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s"

logger = logging.getLogger(__name__)


def read_hl7_file(input_file: str) -> str:
    # newline='' keeps bare '\r' segment terminators intact.
    with open(input_file, 'r', newline='') as f:
        return f.read()


def parse_hl7_file(input_file: str, output_file: str, regenerate_file: str = None) -> int:
    """Parse an HL7 file and save the message tree as JSON."""

    print(f"HL7 Parser - Processing {input_file}")
    print("=" * 50)

    try:
        hl7_content = read_hl7_file(input_file)
        print(f"Loaded {len(hl7_content)} characters")

        message = parse_hl7_message(hl7_content)
        print(f"\nParsing Results:")
        print(f"  Segments: {len(message.segments)}")
        print(f"  Delimiters: {message.delimiters.field}{message.delimiters.encoding_characters}")
        msh = message.get_segment('MSH')
        if msh:
            print(f"  Message Type: {msh.get_field_value(9) or 'UNKNOWN'}")
            print(f"  Control ID: {msh.get_field_value(10) or 'UNKNOWN'}")

        validation_result = Hl7ValidationService().validate_message(hl7_content)
        if validation_result.valid and not validation_result.warnings:
            print("\nMessage is structurally valid!")
        else:
            print(f"\nValidation found {len(validation_result.findings)} issues:")
            for i, finding in enumerate(validation_result.findings[:5]):
                print(f"  {i+1}. [{finding.level}] {finding.message}")
            if len(validation_result.findings) > 5:
                print(f"  ... and {len(validation_result.findings) - 5} more issues")

        json_output = message.model_dump_json(indent=2, by_alias=True)
        with open(output_file, 'w') as f:
            f.write(json_output)
        print(f"\nJSON output saved to: {output_file}")

        if regenerate_file:
            with open(regenerate_file, 'w', newline='') as f:
                f.write(generate_hl7_message(message))
            print(f"Regenerated HL7 saved to: {regenerate_file}")

        return 0

    except OSError as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        print(f"Error during HL7 processing: {e}")
        logger.debug("HL7 processing failed", exc_info=True)
        return 1


def fill_template_file(input_file: str, output_file: str, variables_file: str) -> int:
    """Fill a template once per variable map in the variables file."""

    print(f"HL7 Template - Filling {input_file} with {variables_file}")
    print("=" * 50)

    try:
        template = read_hl7_file(input_file)
        with open(variables_file, 'r') as f:
            variable_sets = json.load(f)
        if isinstance(variable_sets, dict):
            variable_sets = [variable_sets]
        if not isinstance(variable_sets, list) or not all(isinstance(v, dict) for v in variable_sets):
            print("Error: Variables file must hold a JSON object or a list of JSON objects.")
            return 1

        session = SerializationSession()
        first = session.set_template(template, template_id=Path(input_file).name)
        print(f"Variables found: {', '.join(v.variable_id for v in session.unique_variables) or 'none'}")

        for index, values in enumerate(variable_sets):
            instance = first if index == 0 else session.add_instance()
            if instance is None:
                print(f"Warning: only the first {session.max_instances} variable sets were used.")
                break
            for variable_id, value in values.items():
                session.update_variable(instance.id, variable_id, str(value))

        outputs = session.outputs()
        unfilled = sum(1 for output in outputs if output.has_unfilled_variables)
        if unfilled:
            print(f"Warning: {unfilled} of {len(outputs)} messages still contain unfilled variables.")

        with open(output_file, 'w', newline='') as f:
            f.write(format_all_outputs_for_copy(outputs))
        print(f"{len(outputs)} messages saved to: {output_file}")
        return 0

    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        print(f"Error during template filling: {e}")
        logger.debug("Template filling failed", exc_info=True)
        return 1


def main(argv=None):
    """Main entry point with command line argument parsing."""

    parser = argparse.ArgumentParser(
        description="Parse, regenerate and fill HL7 v2.x messages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py adt.hl7                                 # Parse adt.hl7 -> adt.json
  python main.py adt.hl7 tree.json --regenerate out.hl7  # Parse and regenerate
  python main.py template.hl7 out.hl7 --variables v.json # Fill a template
        """
    )

    parser.add_argument('input_file', help='Input HL7 file')
    parser.add_argument('output_file', nargs='?',
                       help='Output file (default: input_file.json, or input_file.filled.hl7 with --variables)')
    parser.add_argument('--regenerate', metavar='FILE',
                       help='Also write the regenerated HL7 text to FILE')
    parser.add_argument('--variables', metavar='FILE',
                       help='JSON object (or list of objects) mapping variable ids to values')
    parser.add_argument('--log-level', default='WARNING',
                       help='Logging level (default: WARNING)')

    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT, stream=sys.stderr)

    if not Path(args.input_file).exists():
        print(f"Error: Input file not found: {args.input_file}")
        return 1

    input_path = Path(args.input_file)
    if args.variables:
        output_file = args.output_file or str(input_path.with_suffix('.filled.hl7'))
        return fill_template_file(args.input_file, output_file, args.variables)

    output_file = args.output_file or str(input_path.with_suffix('.json'))
    return parse_hl7_file(args.input_file, output_file, args.regenerate)


if __name__ == "__main__":
    exit(main())
