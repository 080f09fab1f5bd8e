"""
Tests for schema grounding and natural language translation
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from star_tracker.schemas import AIQueryResult
from star_tracker.services.llm_client import LLMClient, strip_code_fence
from star_tracker.services.query_translator import QueryTranslator, build_prompt
from star_tracker.services.schema_introspector import SchemaIntrospector, parse_columns

from conftest import REPOS_DDL, FakeLLM, FakeStore

UTTERANCE = "Go repositories updated in the last 7 days"


def test_parse_columns_skips_indexes():
    columns = parse_columns(REPOS_DDL)

    assert columns[0] == "name"
    assert "language" in columns
    assert "pushed_at" in columns
    assert "topics" in columns
    assert "idx_desc" not in columns
    assert "INDEX" not in columns
    assert len(columns) == 16


def test_parse_columns_handles_unquoted_and_defaults():
    ddl = "CREATE TABLE t (id UInt64, note String DEFAULT 'a, b', tags Array(Tuple(String, UInt8))) ENGINE = Log"

    assert parse_columns(ddl) == ["id", "note", "tags"]


async def test_introspector_reads_live_ddl_every_time():
    store = FakeStore()
    introspector = SchemaIntrospector(store, "default", "repos_new")

    await introspector.get_current_schema()
    ddl = await introspector.get_current_schema()

    assert ddl == REPOS_DDL
    assert [q for q, _ in store.queries] == ["SHOW CREATE TABLE `default`.`repos_new`"] * 2


def test_prompt_is_grounded_in_schema():
    prompt = build_prompt(REPOS_DDL, UTTERANCE)

    assert REPOS_DDL in prompt
    assert UTTERANCE in prompt
    assert "clickhouse" in prompt
    assert "FINAL" in prompt


async def test_translate_success():
    llm = FakeLLM(
        reply={
            "success": True,
            "sql": "SELECT * FROM repos_new FINAL WHERE language = 'Go' AND pushed_at >= now() - INTERVAL 7 DAY",
            "conditions": [{"field": "language", "operator": "=", "value": "Go"}],
        }
    )

    result = await QueryTranslator(llm).translate(REPOS_DDL, UTTERANCE)

    assert result.success
    assert "pushed_at" in result.sql
    assert result.conditions[0].field == "language"
    assert REPOS_DDL in llm.prompts[0]


async def test_declined_utterance():
    llm = FakeLLM(reply={"success": False, "sql": "", "conditions": []})

    result = await QueryTranslator(llm).translate(REPOS_DDL, "what is the weather")

    assert result.success is False


@pytest.mark.parametrize(
    "error",
    [
        asyncio.TimeoutError(),
        RuntimeError("LLM client not configured"),
        ConnectionError("503"),
    ],
)
async def test_model_failures_become_declined(error):
    result = await QueryTranslator(FakeLLM(error=error)).translate(REPOS_DDL, UTTERANCE)

    assert result == AIQueryResult(success=False, sql="", conditions=[])


async def test_success_without_sql_is_declined():
    llm = FakeLLM(reply={"success": True, "sql": "  ", "conditions": []})

    result = await QueryTranslator(llm).translate(REPOS_DDL, UTTERANCE)

    assert result.success is False


async def test_blank_utterance_skips_the_model():
    llm = FakeLLM(reply={"success": True, "sql": "SELECT 1", "conditions": []})

    result = await QueryTranslator(llm).translate(REPOS_DDL, "   ")

    assert result.success is False
    assert llm.prompts == []


def test_strip_code_fence():
    assert strip_code_fence('```json\n{"success": false}\n```') == '{"success": false}'
    assert strip_code_fence('{"success": true}') == '{"success": true}'


def _openai_stub(content):
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    create = AsyncMock(return_value=completion)
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)), close=AsyncMock())


async def test_llm_client_generates_structured_output(settings):
    stub = _openai_stub('```json\n{"success": true, "sql": "SELECT * FROM repos_new FINAL", "conditions": []}\n```')
    client = LLMClient(settings, client=stub)

    result = await client.generate_structured("prompt", AIQueryResult)

    assert result.success
    kwargs = stub.chat.completions.create.await_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["model"] == settings.openai_model


async def test_llm_client_rejects_malformed_output(settings):
    client = LLMClient(settings, client=_openai_stub('{"sql": 42}'))

    with pytest.raises(ValidationError):
        await client.generate_structured("prompt", AIQueryResult)


async def test_llm_client_hard_timeout(settings):
    async def slow(**kwargs):
        await asyncio.sleep(5)

    stub = _openai_stub("{}")
    stub.chat.completions.create = slow
    client = LLMClient(settings.model_copy(update={"llm_timeout_seconds": 0.01}), client=stub)

    with pytest.raises(asyncio.TimeoutError):
        await client.generate_structured("prompt", AIQueryResult)


async def test_unconfigured_llm_client_raises(settings):
    client = LLMClient(settings.model_copy(update={"openai_api_key": None}))

    assert client.client is None
    with pytest.raises(RuntimeError):
        await client.generate_structured("prompt", AIQueryResult)
