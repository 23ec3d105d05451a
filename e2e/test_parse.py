"""Config document parser tests."""

import json
import pathlib

import pytest

from schemas.config import OverflowPolicy, ResponseOrchestrationConfig
from schemas.workflow import ResponseWorkflow
from utils.parse import ConfigParseError, load_config, parse_config

FIXTURE = pathlib.Path(__file__).parent.parent / "fixtures" / "orchestration.json"


class TestParseConfig:
    def test_snake_case_document(self):
        config = parse_config('{"id": "e", "name": "E", "resource_allocation": {"max_concurrent": 3}}',
                              ResponseOrchestrationConfig)
        assert config.resource_allocation.max_concurrent == 3

    def test_camel_case_keys_are_converted(self):
        text = json.dumps({
            "id": "e",
            "name": "E",
            "resourceAllocation": {"maxConcurrent": 2, "admission": {"maxQueued": 5, "overflow": "DROP_OLDEST"}},
            "performance": {"responseTimeout": 1000, "retryFailedSteps": True},
        })
        config = parse_config(text, ResponseOrchestrationConfig)
        assert config.resource_allocation.max_concurrent == 2
        assert config.resource_allocation.admission.max_queued == 5
        assert config.resource_allocation.admission.overflow == OverflowPolicy.DROP_OLDEST
        assert config.performance.retry_failed_steps is True

    def test_parameters_keys_are_left_alone(self):
        text = json.dumps({
            "id": "wf",
            "name": "WF",
            "steps": [{
                "id": "s1",
                "name": "S1",
                "type": "ACTION",
                "config": {"action": "NOTIFY", "parameters": {"ticketQueue": "ops"}},
            }],
        })
        workflow = parse_config(text, ResponseWorkflow)
        assert workflow.steps[0].config.parameters == {"ticketQueue": "ops"}

    def test_bom_and_line_comments(self):
        text = '\ufeff// engine config\n{\n  // the id\n  "id": "e",\n  "name": "E"\n}'
        assert parse_config(text, ResponseOrchestrationConfig).id == "e"

    def test_not_json_raises_with_raw(self):
        with pytest.raises(ConfigParseError) as exc_info:
            parse_config("not json", ResponseOrchestrationConfig)
        assert exc_info.value.raw == "not json"

    def test_json_array_is_rejected(self):
        with pytest.raises(ConfigParseError, match="No JSON object"):
            parse_config("[1, 2]", ResponseOrchestrationConfig)

    def test_schema_mismatch_raises(self):
        with pytest.raises(ConfigParseError, match="does not match schema"):
            parse_config('{"resource_allocation": {"max_concurrent": "many"}}', ResponseOrchestrationConfig)


class TestLoadConfig:
    def test_fixture_loads(self):
        config = load_config(FIXTURE, ResponseOrchestrationConfig)
        assert config.id == "field-operations"
        assert [w.id for w in config.workflows] == [
            "emergency-response",
            "asset-condition-response",
            "maintenance-response",
        ]
        pools = {p.id: p for p in config.resource_allocation.resource_pools}
        assert pools["inspector"].capacity == 1

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigParseError, match="Cannot read"):
            load_config(tmp_path / "missing.json", ResponseOrchestrationConfig)
