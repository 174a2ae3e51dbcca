"""Tests for the operation catalogue and argument schemas."""

import tempfile
from pathlib import Path

import mcp.types as types
import pytest

from orc_tasks.config import Config
from orc_tasks.core.context import AgentContext
from orc_tasks.core.errors import ArgumentError, NotFound, ProtocolError
from orc_tasks.db.engine import init_db
from orc_tasks.mcp.registry import ArgumentSchema, Catalogue, Field, Operation, OperationContext, Outcome


@pytest.fixture
def ctx():
    with tempfile.TemporaryDirectory() as tmp:
        conn = init_db(Path(tmp) / "test.db")
        yield OperationContext(
            db=conn,
            agent=AgentContext("maintenance", "maintenance", tmp),
            config=Config(db_path=Path(tmp) / "test.db"),
        )
        conn.close()


SCHEMA = ArgumentSchema((
    Field("task_id", int, required=True),
    Field("status", str, choices=("open", "closed")),
    Field("verbose", bool, default=False),
    Field("weight", float),
))


class TestArgumentSchema:
    def test_valid_payload(self):
        args = SCHEMA.validate({"task_id": 3, "status": "open", "verbose": True, "weight": 2})
        assert args == {"task_id": 3, "status": "open", "verbose": True, "weight": 2.0}

    def test_defaults_applied(self):
        assert SCHEMA.validate({"task_id": 1}) == {"task_id": 1, "verbose": False}

    def test_none_counts_as_absent(self):
        assert SCHEMA.validate({"task_id": 1, "status": None}) == {"task_id": 1, "verbose": False}

    def test_unknown_keys_dropped(self):
        assert "extra" not in SCHEMA.validate({"task_id": 1, "extra": "x"})

    def test_missing_required(self):
        with pytest.raises(ArgumentError, match="task_id is missing"):
            SCHEMA.validate({})

    def test_empty_required_string(self):
        schema = ArgumentSchema((Field("title", str, required=True),))
        with pytest.raises(ArgumentError):
            schema.validate({"title": ""})

    def test_wrong_type(self):
        with pytest.raises(ArgumentError, match="task_id must be integer"):
            SCHEMA.validate({"task_id": "3"})

    def test_bool_is_not_an_int(self):
        with pytest.raises(ArgumentError):
            SCHEMA.validate({"task_id": True})

    def test_outside_allow_list(self):
        with pytest.raises(ArgumentError, match="one of: open, closed"):
            SCHEMA.validate({"task_id": 1, "status": "pending"})

    def test_non_mapping_payload(self):
        with pytest.raises(ArgumentError):
            SCHEMA.validate(["task_id", 1])

    def test_argument_error_is_invalid_params(self):
        with pytest.raises(ProtocolError) as exc:
            SCHEMA.validate({})
        assert exc.value.code == types.INVALID_PARAMS

    def test_json_schema(self):
        schema = SCHEMA.to_json_schema()
        assert schema["type"] == "object"
        assert schema["required"] == ["task_id"]
        assert schema["properties"]["status"]["enum"] == ["open", "closed"]
        assert schema["properties"]["verbose"]["type"] == "boolean"


class TestCatalogue:
    def test_duplicate_names_rejected(self):
        op = Operation("echo", "Echo", lambda ctx: "hi")
        with pytest.raises(ValueError):
            Catalogue([op, op])

    def test_lookup(self):
        catalogue = Catalogue([Operation("echo", "Echo", lambda ctx: "hi")])
        assert "echo" in catalogue
        assert len(catalogue) == 1
        assert catalogue.names() == ["echo"]
        assert catalogue.get("nope") is None

    def test_tools(self):
        catalogue = Catalogue([Operation("echo", "Echo back", lambda ctx: "hi", SCHEMA)])
        tool = catalogue.tools()[0]
        assert isinstance(tool, types.Tool)
        assert tool.name == "echo"
        assert tool.inputSchema["required"] == ["task_id"]

    def test_invoke_passes_validated_arguments(self, ctx):
        seen = {}

        def handler(ctx, task_id, verbose=False, status=None, weight=None):
            seen.update(task_id=task_id, verbose=verbose, agent=ctx.agent.agent_id)
            return {"ok": True}

        catalogue = Catalogue([Operation("op", "Op", handler, SCHEMA)])
        outcome = catalogue.invoke("op", {"task_id": 5}, ctx)
        assert seen == {"task_id": 5, "verbose": False, "agent": "maintenance"}
        assert not outcome.is_error
        assert '"ok": true' in outcome.text

    def test_invalid_arguments_never_reach_handler(self, ctx):
        calls = []
        catalogue = Catalogue([Operation("op", "Op", lambda ctx, **kw: calls.append(kw), SCHEMA)])
        with pytest.raises(ArgumentError):
            catalogue.invoke("op", {"task_id": "x"}, ctx)
        assert calls == []

    def test_unknown_operation(self, ctx):
        with pytest.raises(ProtocolError, match="Unknown tool: nope"):
            Catalogue([]).invoke("nope", {}, ctx)

    def test_ledger_errors_become_failure_outcomes(self, ctx):
        def handler(ctx):
            raise NotFound("Task #9 not found")

        outcome = Catalogue([Operation("op", "Op", handler)]).invoke("op", None, ctx)
        assert outcome.is_error
        assert outcome.text == "❌ Task #9 not found"

    def test_unexpected_errors_propagate(self, ctx):
        def handler(ctx):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            Catalogue([Operation("op", "Op", handler)]).invoke("op", None, ctx)


class TestOutcome:
    def test_text_passthrough(self):
        assert Outcome("hello").text == "hello"

    def test_mapping_rendered_as_json(self):
        assert Outcome({"a": 1}).text == '{\n  "a": 1\n}'
