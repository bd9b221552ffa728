"""Unit tests for structured logging."""

import json
import logging

from keycloak_deployer.errors import PatchFieldUnmatched
from keycloak_deployer.models.resources import (
    ReconcileOutcome,
    ReconcileResult,
    ResourceDescriptor,
    ResourceState,
)
from keycloak_deployer.observability.logging import (
    CorrelationIDFilter,
    DeployerLogger,
    StructuredFormatter,
    get_correlation_id,
    set_correlation_id,
)


def _record(message="hello", **extra):
    record = logging.LogRecord("test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_json_fields(self):
        set_correlation_id("abc12345")
        record = _record(resource_type="Secret", outcome="created")
        CorrelationIDFilter().filter(record)

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "hello"
        assert data["correlation_id"] == "abc12345"
        assert data["resource_type"] == "Secret"
        assert data["outcome"] == "created"
        assert "namespace" not in data

    def test_correlation_id_round_trip(self):
        set_correlation_id("run-1")

        assert get_correlation_id() == "run-1"


class TestDeployerLogger:
    def test_reconcile_result_fields(self, caplog):
        logger = DeployerLogger("test.reconcile")
        result = ReconcileResult(
            ResourceDescriptor("Secret", "db", "keycloak"),
            ReconcileOutcome.CREATED,
            ResourceState.PRESENT,
        )

        with caplog.at_level(logging.INFO, logger="test.reconcile"):
            logger.log_reconcile_result(result)

        record = caplog.records[-1]
        assert record.resource_name == "db"
        assert record.outcome == "created"
        assert "Secret keycloak/db -> created" in record.getMessage()

    def test_warning_condition(self, caplog):
        logger = DeployerLogger("test.warning")

        with caplog.at_level(logging.WARNING, logger="test.warning"):
            logger.log_warning_condition(PatchFieldUnmatched("domain", "ingress.rules.host"))

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.category == "patch"
