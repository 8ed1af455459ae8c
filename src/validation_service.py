from typing import List, Optional
import logging

from hl7_models import Hl7Segment
from hl7_parser import SEGMENT_NAME_PATTERN, Hl7Parser

logger = logging.getLogger(__name__)

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"


class ValidationFinding:
    """A single validation error or warning."""
    def __init__(self, level: str, code: str, message: str, location: Optional[dict] = None):
        self.level = level
        self.code = code
        self.message = message
        self.location = location or {}

    def __repr__(self) -> str:
        return f"ValidationFinding({self.level!r}, {self.code!r})"


class ValidationResult:
    """Container for validation results. Only errors make a message invalid."""
    def __init__(self, findings: List[ValidationFinding]):
        self.findings = findings
        self.errors = [f for f in findings if f.level == SEVERITY_ERROR]
        self.warnings = [f for f in findings if f.level == SEVERITY_WARNING]
        self.valid = len(self.errors) == 0


class Hl7ValidationService:
    """Structural checks over a parsed message tree."""

    def check_structural_rules(self, segments: List[Hl7Segment]) -> List[ValidationFinding]:
        findings: List[ValidationFinding] = []

        if not segments:
            findings.append(ValidationFinding(
                level=SEVERITY_ERROR,
                code="EMPTY_MESSAGE",
                message="Message is empty. HL7 messages must contain at least an MSH segment.",
                location={"path": ""},
            ))
            return findings

        if not any(seg.name == 'MSH' for seg in segments):
            findings.append(ValidationFinding(
                level=SEVERITY_ERROR,
                code="MISSING_MSH",
                message="MSH segment is required. Every HL7 message must start with an MSH segment.",
                location={"path": "MSH"},
            ))

        if segments[0].name != 'MSH':
            findings.append(ValidationFinding(
                level=SEVERITY_ERROR,
                code="MSH_NOT_FIRST",
                message=f"MSH segment must be the first segment. Found \"{segments[0].name}\" instead.",
                location={"path": "MSH", "segment_index": 0},
            ))

        for index, segment in enumerate(segments):
            if not SEGMENT_NAME_PATTERN.match(segment.name):
                findings.append(ValidationFinding(
                    level=SEVERITY_ERROR,
                    code="INVALID_SEGMENT_NAME",
                    message=(
                        f"Invalid segment name \"{segment.name}\". Segment names must be 3 uppercase "
                        f"alphanumeric characters starting with a letter (e.g., MSH, PID, OBR)."
                    ),
                    location={"path": segment.name, "segment_index": index},
                ))

        return findings

    def validate_segments(self, segments: List[Hl7Segment]) -> ValidationResult:
        findings = self.check_structural_rules(segments)
        result = ValidationResult(findings)
        logger.debug(f"Structural validation: valid={result.valid}, findings={len(findings)}")
        return result

    def validate_message(self, hl7_content: str) -> ValidationResult:
        """
        Parse and validate raw HL7 content.

        Parser warnings are reported as PARSE_WARNING findings next to the
        structural findings. Unexpected failures are returned as a finding
        rather than raised.

        Args:
            hl7_content: The raw HL7 message text

        Returns:
            ValidationResult containing validation status and findings
        """
        try:
            logger.info(f"Starting HL7 validation of {len(hl7_content or '')} characters")
            message = Hl7Parser(hl7_content).parse()

            findings = self.check_structural_rules(message.segments)
            for warning in message.warnings:
                findings.append(ValidationFinding(
                    level=SEVERITY_WARNING,
                    code="PARSE_WARNING",
                    message=warning.message,
                    location={
                        "segment_name": warning.segment_name or "UNKNOWN",
                        "line_number": warning.line_number or 1,
                    },
                ))

            result = ValidationResult(findings)
            logger.info(f"Validation completed: valid={result.valid}, findings={len(findings)}")
            return result

        except Exception as e:
            logger.error(f"HL7 validation failed: {e}", exc_info=True)

            error_finding = ValidationFinding(
                level=SEVERITY_ERROR,
                code="VALIDATION_ERROR",
                message=f"Validation failed: {str(e)}",
                location={"segment_name": "DOCUMENT", "line_number": 1},
            )
            return ValidationResult([error_finding])
