"""
Test suite for logging helpers.

System role: Verification of structured log formatting
"""

import logging

from infragraph.observability import configure_logging
from infragraph.observability.log_utils import (
    format_context,
    log_exception_with_context,
    log_with_context,
    safe_log_value,
)


class TestSafeLogValue:
    """Test suite for safe_log_value."""

    def test_collections_summarized(self) -> None:
        assert safe_log_value(["a", "b"]) == "list(2 items)"
        assert safe_log_value({"k": 1}) == "dict(1 keys)"
        assert safe_log_value(None) == "None"

    def test_long_values_truncated(self) -> None:
        result = safe_log_value("x" * 20, max_length=5)

        assert result.startswith("xxxxx... (truncated")
        assert "20 total" in result


class TestContextLogging:
    """Test suite for context-carrying log calls."""

    def test_context_sorted_by_key(self) -> None:
        assert format_context(node="vpc.main", attempt=2) == "attempt=2 node=vpc.main"

    def test_log_with_context(self, caplog) -> None:
        """
        Test context is appended to the message and attached to the record.

        Arrange: Named logger at INFO
        Act: Log with node and action context
        Assert: Message suffix and record attributes present
        """
        # Arrange
        logger = logging.getLogger("infragraph.tests.context")

        # Act
        with caplog.at_level(logging.INFO, logger="infragraph.tests.context"):
            log_with_context(logger, logging.INFO, "created", node="vpc.main", action="create")

        # Assert
        record = caplog.records[-1]
        assert record.getMessage() == "created action=create node=vpc.main"
        assert record.node == "vpc.main"

    def test_log_exception_with_context(self, caplog) -> None:
        logger = logging.getLogger("infragraph.tests.errors")

        with caplog.at_level(logging.ERROR, logger="infragraph.tests.errors"):
            log_exception_with_context(logger, "create failed", ValueError("boom"), node="subnet.a")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.error_type == "ValueError"
        assert record.getMessage().endswith(": boom")


class TestConfigureLogging:
    """Test suite for configure_logging."""

    def test_sets_root_level(self) -> None:
        root = logging.getLogger()
        saved_level, saved_handlers = root.level, root.handlers[:]
        try:
            configure_logging("debug")

            assert root.level == logging.DEBUG
            assert logging.getLogger("botocore").level == logging.WARNING
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)
