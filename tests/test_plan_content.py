"""Tests for business-plan section helpers built on the scheduler."""

from __future__ import annotations

import pytest

from bizplan.gateway.errors import Unauthorized, UpstreamError
from bizplan.services.plan_content import (
    ContentValidationError,
    extract_content,
    generate_json_section,
    safe_json_parse,
    strip_code_fences,
)
from fakes import make_payload, user


def _require_usp(data):
    if not isinstance(data, dict) or not data.get("mainUsp"):
        raise ContentValidationError("mainUsp missing")
    return data


class TestContentHelpers:
    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'

    def test_safe_json_parse_plain(self):
        assert safe_json_parse('{"coreStack": []}') == {"coreStack": []}

    def test_safe_json_parse_repairs_trailing_comma(self):
        assert safe_json_parse('{"mainUsp": "Fast", "supportingPoints": ["a", "b",],}') == {
            "mainUsp": "Fast",
            "supportingPoints": ["a", "b"],
        }

    def test_safe_json_parse_repairs_single_quotes(self):
        assert safe_json_parse("{'strengths': ['cheap']}") == {"strengths": ["cheap"]}

    def test_safe_json_parse_unrecoverable(self):
        with pytest.raises(ContentValidationError, match="Failed to parse and repair JSON"):
            safe_json_parse("")

    def test_extract_content(self):
        assert extract_content(make_payload("text")) == "text"

    def test_extract_content_malformed(self):
        with pytest.raises(ContentValidationError):
            extract_content({"choices": []})


class TestGenerateJsonSection:
    @pytest.mark.asyncio
    async def test_parses_fenced_json(self, scheduler, upstream):
        upstream.script.append(make_payload('```json\n{"mainUsp": "Fast", "supportingPoints": ["a"]}\n```'))
        data = await generate_json_section(scheduler, user("usp"), validate=_require_usp)
        assert data == {"mainUsp": "Fast", "supportingPoints": ["a"]}
        assert len(upstream.calls) == 1

    @pytest.mark.asyncio
    async def test_retries_invalid_content(self, scheduler, upstream):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        upstream.script.extend(
            [
                make_payload('{"other": 1}'),
                make_payload('{"mainUsp": "Fast"}'),
            ]
        )
        data = await generate_json_section(scheduler, user("usp"), validate=_require_usp, sleep=fake_sleep)

        assert data == {"mainUsp": "Fast"}
        # The rejected payload is not replayed from cache
        assert len(upstream.calls) == 2
        assert sleeps == [1.5]

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self, scheduler, upstream):
        async def fake_sleep(seconds):
            pass

        upstream.script.extend(make_payload('{"other": 1}') for _ in range(3))
        with pytest.raises(ContentValidationError, match="after 3 attempts"):
            await generate_json_section(scheduler, user("usp"), validate=_require_usp, sleep=fake_sleep)
        assert len(upstream.calls) == 3

    @pytest.mark.asyncio
    async def test_gateway_errors_are_not_retried(self, scheduler, upstream):
        upstream.script.append(UpstreamError("boom", status_code=401))
        with pytest.raises(Unauthorized):
            await generate_json_section(scheduler, user("usp"))
        assert len(upstream.calls) == 1

    @pytest.mark.asyncio
    async def test_without_validator_returns_parsed_json(self, scheduler, upstream):
        upstream.script.append(make_payload('["opportunity one", "opportunity two"]'))
        data = await generate_json_section(scheduler, user("swot"))
        assert data == ["opportunity one", "opportunity two"]
