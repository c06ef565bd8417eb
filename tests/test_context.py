"""Tests for orchestration/context.py."""

import pytest

from infraphase.core.errors import PermanentConfigurationError
from infraphase.orchestration.context import ExecutionContext, output_references


class TestOutputReferences:
    def test_finds_nested_references(self):
        value = {
            "host": "${output:redis.endpoint}",
            "servers": ["${output:db.host}:5432", "plain"],
            "name": "${var:prefix}-app",
        }
        assert output_references(value) == {"redis", "db"}

    def test_ignores_non_output_kinds(self):
        assert output_references("${env:HOME}/${var:x}") == set()


class TestExecutionContext:
    """Tests for reference resolution."""

    def test_resolves_variables_outputs_and_env(self):
        ctx = ExecutionContext(
            variables={"prefix": "shop"},
            outputs={"rg": {"location": "westus"}},
            environ={"REGION_SUFFIX": "2"},
        )
        resolved = ctx.resolve(
            {
                "name": "${var:prefix}-cache",
                "location": "${output:rg.location}${env:REGION_SUFFIX}",
                "tags": ["${var:prefix}", 3],
                "enabled": True,
            }
        )
        assert resolved == {
            "name": "shop-cache",
            "location": "westus2",
            "tags": ["shop", 3],
            "enabled": True,
        }

    def test_record_outputs_copies(self):
        ctx = ExecutionContext()
        outputs = {"id": "1"}
        ctx.record_outputs("rg", outputs)
        outputs["id"] = "changed"
        assert ctx.lookup("output", "rg.id") == "1"

    @pytest.mark.parametrize(
        "template, message",
        [
            ("${var:missing}", "Undefined variable"),
            ("${env:INFRAPHASE_TEST_UNSET}", "not set"),
            ("${output:rg.id}", "not available"),
            ("${output:rg}", "TASK.KEY"),
            ("${secret:x}", "Unknown reference kind"),
        ],
    )
    def test_unresolvable_references(self, template, message):
        ctx = ExecutionContext(environ={})
        with pytest.raises(PermanentConfigurationError, match=message):
            ctx.resolve(template)

    def test_missing_output_key(self):
        ctx = ExecutionContext(outputs={"rg": {"id": "1"}})
        with pytest.raises(PermanentConfigurationError, match="no output 'location'"):
            ctx.resolve("${output:rg.location}")
