# FILE: tests/conftest.py

import pytest
import sys
import os
import logging

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# ==============================================================================
# PYTEST CONFIGURATION & HOOKS
# ==============================================================================

def pytest_configure(config):
    """Configure pytest settings and markers."""
    config.addinivalue_line("markers", "unit: Pure unit tests with no external dependencies.")
    config.addinivalue_line("markers", "integration: Tests exercising several modules or the command line tool.")

@pytest.fixture(scope="session", autouse=True)
def setup_test_environment(pytestconfig):
    """Set up test environment with logging configuration."""
    # Use pytest's log_cli_level if available, otherwise default to INFO
    log_level = pytestconfig.getoption("log_cli_level") or "INFO"
    logging.basicConfig(
        level=log_level.upper(),
        format="[%(asctime)s] [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s",
        stream=sys.stdout,
        force=True,
    )
    logging.info(f"Test logging configured with level: {log_level.upper()}")
    yield

# ==============================================================================
# SAMPLE MESSAGES
# ==============================================================================

@pytest.fixture(scope="session")
def adt_a01_message() -> str:
    """A complete ADT^A01 message using '\\r' segment terminators."""
    return "\r".join([
        "MSH|^~\\&|SENDING_APP|SENDING_FAC|RECEIVING_APP|RECEIVING_FAC|20240115120000||ADT^A01^ADT_A01|MSG00001|P|2.5.1",
        "EVN|A01|20240115120000",
        "PID|1||12345^^^MRN^MR~67890^^^SSN^SS||Doe^John^Middle^Jr||19800101|M|||123 Main St^^Anytown^CA^90210",
        "PV1|1|I|ICU^101^A|||||||||||||||V123",
        "OBX|1|ST|CODE^Description&Sub||A\\F\\B\\S\\C",
    ])

@pytest.fixture(scope="session")
def variable_template() -> str:
    """A template with linked, standalone and repeated variables."""
    return "\r".join([
        "MSH|^~\\&|App|Fac|||20240115||ADT^A01|HELPERVARIABLE1|P|2.5",
        "PID|1||HELPERVARIABLE2||Doe^John",
        "PV1|HELPERVARIABLE|I|HELPERVARIABLE2",
        "NK1|1|HELPERVARIABLE3~Static",
    ])
