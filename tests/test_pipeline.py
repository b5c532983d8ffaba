"""Tests for the validation pipeline — cache, guards, augmentation, metrics."""

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest

from ibanservice.orchestrator.pipeline import (
    EMPTY_REQUEST_MESSAGE,
    FALLBACK_BODY,
    ValidationPipeline,
    render,
)
from ibanservice.orchestrator.schemas import ValidationRequest, parse_option
from ibanservice.services.metrics import MetricsDispatcher

VALID_DE_IBAN = "DE89370400440532013000"


# ═══════════════ Request options / key ═══════════════


class TestRequestOptions:
    @pytest.mark.parametrize("value,expected", [
        ("1", True),
        ("true", True),
        ("0", False),
        ("false", False),
        ("TRUE", False),
        ("yes", False),
        ("", False),
        (None, False),
    ])
    def test_parse_option(self, value, expected):
        assert parse_option(value) is expected

    def test_cache_key_order(self):
        request = ValidationRequest.from_query("DE89", validate_bank_code="1", get_bic=None)
        # IBAN, then BIC flag, then bank-code flag
        assert request.cache_key == "DE89falsetrue"

    def test_cache_key_bic(self):
        request = ValidationRequest.from_query("DE89", get_bic="true")
        assert request.cache_key == "DE89truefalse"

    def test_wants_augmentation(self):
        assert ValidationRequest.from_query("X").wants_augmentation is False
        assert ValidationRequest.from_query("X", get_bic="1").wants_augmentation is True


# ═══════════════ Happy path ═══════════════


class TestValidIban:
    @pytest.mark.asyncio
    async def test_valid_without_options(self, pipeline, augmenter):
        body, status = await pipeline.handle(VALID_DE_IBAN)
        data = json.loads(body)
        assert status == 200
        assert data == {
            "valid": True,
            "message": "Valid IBAN.",
            "ibanPrintFormat": "DE89 3704 0044 0532 0130 00",
        }
        assert augmenter.lookups == []

    @pytest.mark.asyncio
    async def test_valid_with_both_options(self, pipeline):
        body, status = await pipeline.handle(VALID_DE_IBAN, "1", "1")
        data = json.loads(body)
        assert status == 200
        assert list(data) == ["valid", "message", "ibanPrintFormat", "bankCode", "bankCodeValid", "bic"]
        assert data["bankCode"] == "37040044"
        assert data["bankCodeValid"] is True
        assert data["bic"] == "COBADEFFXXX"

    @pytest.mark.asyncio
    async def test_two_space_indent(self, pipeline):
        body, _ = await pipeline.handle(VALID_DE_IBAN)
        assert body.startswith('{\n  "valid": true,')

    @pytest.mark.asyncio
    async def test_invalid_checksum_is_200(self, pipeline):
        body, status = await pipeline.handle("DE88370400440532013000")
        assert status == 200
        assert json.loads(body)["valid"] is False


# ═══════════════ Cache behaviour ═══════════════


class TestCaching:
    @pytest.mark.asyncio
    async def test_repeat_is_byte_identical(self, pipeline, augmenter):
        first, _ = await pipeline.handle(VALID_DE_IBAN, "1", "1")
        second, status = await pipeline.handle(VALID_DE_IBAN, "1", "1")
        assert second == first
        assert status == 200
        # second call never reached the store
        assert len(augmenter.lookups) == 2

    @pytest.mark.asyncio
    async def test_stored_under_request_key(self, pipeline, cache):
        body, _ = await pipeline.handle(VALID_DE_IBAN, get_bic="1")
        assert await cache.get(VALID_DE_IBAN + "truefalse") == body

    @pytest.mark.asyncio
    async def test_options_cached_independently(self, pipeline, cache, clock):
        plain, _ = await pipeline.handle(VALID_DE_IBAN)
        with_bic, _ = await pipeline.handle(VALID_DE_IBAN, get_bic="1")
        assert plain != with_bic
        assert "bic" not in json.loads(plain)
        assert json.loads(with_bic)["bic"] == "COBADEFFXXX"
        assert len(cache) == 2

        # independent expiry
        clock.advance(200)
        await cache.set(VALID_DE_IBAN + "truefalse", with_bic)
        clock.advance(150)
        assert await cache.get(VALID_DE_IBAN + "falsefalse") is None
        assert await cache.get(VALID_DE_IBAN + "truefalse") == with_bic

    @pytest.mark.asyncio
    async def test_ttl_expiry_recomputes(self, pipeline, augmenter, clock):
        await pipeline.handle(VALID_DE_IBAN, "1")
        clock.advance(301)
        await pipeline.handle(VALID_DE_IBAN, "1")
        assert len(augmenter.lookups) == 2

    @pytest.mark.asyncio
    async def test_cache_hit_short_circuits(self, pipeline, cache):
        await cache.set(VALID_DE_IBAN + "falsefalse", '{"cached": "body"}')
        body, status = await pipeline.handle(VALID_DE_IBAN)
        assert body == '{"cached": "body"}'
        assert status == 200


# ═══════════════ Empty input ═══════════════


class TestEmptyInput:
    @pytest.mark.asyncio
    async def test_empty_is_400(self, pipeline):
        body, status = await pipeline.handle("")
        data = json.loads(body)
        assert status == 400
        assert data["valid"] is False
        assert data["message"] == EMPTY_REQUEST_MESSAGE

    @pytest.mark.asyncio
    async def test_empty_never_cached(self, pipeline, cache, register, dispatcher):
        await pipeline.handle("", "1", "1")
        _, status = await pipeline.handle("", "1", "1")
        assert status == 400
        assert len(cache) == 0
        await dispatcher.drain()
        assert register.events == []


# ═══════════════ Unparseable input ═══════════════


class TestUnparseable:
    @pytest.mark.parametrize("raw", ["DE00", "notaniban"])
    @pytest.mark.asyncio
    async def test_unparseable_is_200_invalid(self, pipeline, raw):
        body, status = await pipeline.handle(raw)
        data = json.loads(body)
        assert status == 200
        assert data["valid"] is False
        assert data["message"].startswith("Cannot parse as IBAN: ")
        assert data["ibanPrintFormat"] == raw

    @pytest.mark.asyncio
    async def test_cached_without_expiry(self, pipeline, cache, clock):
        first, _ = await pipeline.handle("notaniban")
        clock.advance(10 * 365 * 24 * 3600)
        cache.sweep()
        assert await cache.get("notanibanfalsefalse") == first
        second, _ = await pipeline.handle("notaniban")
        assert second == first

    @pytest.mark.asyncio
    async def test_no_augmentation(self, pipeline, augmenter):
        body, _ = await pipeline.handle("DE00", "1", "1")
        assert augmenter.lookups == []
        assert "bankCode" not in json.loads(body)


# ═══════════════ Store failures ═══════════════


class TestStoreFailure:
    @pytest.mark.asyncio
    async def test_store_failure_degrades(self, cache, dispatcher, register, make_augmenter):
        pipeline = ValidationPipeline(cache, make_augmenter(fail=True), dispatcher)
        body, status = await pipeline.handle(VALID_DE_IBAN, "1", "1")
        data = json.loads(body)
        assert status == 200
        assert data["valid"] is True
        assert data["bankCodeValid"] is False
        assert "bic" not in data

        await dispatcher.drain()
        assert len(register.events) == 1


# ═══════════════ Metrics ═══════════════


class TestMetricsDispatch:
    @pytest.mark.asyncio
    async def test_one_event_per_response(self, pipeline, dispatcher, register):
        await pipeline.handle(VALID_DE_IBAN)        # fresh
        await pipeline.handle(VALID_DE_IBAN)        # cache hit
        await pipeline.handle("notaniban")          # unparseable
        await pipeline.handle("notaniban")          # unparseable, cache hit
        await pipeline.handle("")                   # empty, no event
        await dispatcher.drain()

        sources = [e.source for e in register.events]
        assert sources == ["fresh", "cache", "cache", "cache"]
        assert register.events[0].countryCode == "DE"
        assert register.events[0].valid is True
        assert register.events[1].valid is True

    @pytest.mark.asyncio
    async def test_response_not_blocked_by_metrics(self, cache, augmenter):
        sink = MagicMock()
        sink.name = "never"

        async def never_finishes(*args):
            await asyncio.Event().wait()

        sink.log_from_parsed_iban = never_finishes
        dispatcher = MetricsDispatcher(sink, "Test")
        pipeline = ValidationPipeline(cache, augmenter, dispatcher)

        body, status = await pipeline.handle(VALID_DE_IBAN)
        await asyncio.sleep(0)
        assert status == 200
        assert dispatcher.pending == 1

        tasks = list(dispatcher._pending)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_metrics_failure_invisible(self, cache, augmenter):
        sink = MagicMock()
        sink.name = "broken"

        async def boom(*args):
            raise RuntimeError("collector down")

        sink.log_from_parsed_iban = boom
        sink.log_from_cached_body = boom
        dispatcher = MetricsDispatcher(sink, "Test")
        pipeline = ValidationPipeline(cache, augmenter, dispatcher)

        _, status = await pipeline.handle(VALID_DE_IBAN)
        _, status_hit = await pipeline.handle(VALID_DE_IBAN)
        await dispatcher.drain()
        assert status == status_hit == 200


# ═══════════════ Serialization failure ═══════════════


class TestSerializationFailure:
    def test_render_returns_none_on_error(self):
        broken = MagicMock()
        broken.to_json.side_effect = TypeError("not serializable")
        assert render(broken) is None

    @pytest.mark.asyncio
    async def test_fallback_body_not_cached(self, pipeline, cache):
        with patch("ibanservice.orchestrator.pipeline.render", return_value=None):
            body, status = await pipeline.handle(VALID_DE_IBAN)
        assert status == 200
        assert body == FALLBACK_BODY
        assert json.loads(body)["valid"] is False
        assert len(cache) == 0
