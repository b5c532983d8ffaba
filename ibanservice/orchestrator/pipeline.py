"""Validation pipeline — turns one /validate call into (body, status).

Order of work:
  1. build the cache key (IBAN + BIC flag + bank-code flag)
  2. cache probe; a hit is returned as-is and logged from the cached body
  3. empty input -> 400, never cached
  4. unparseable input -> 200 invalid verdict, cached without expiry
  5. parse + validate
  6. optional augmentation: bank code, then BIC
  7. render, cache with the default TTL, log, return 200

Metrics are scheduled on the dispatcher and never awaited here.
"""

import json
import logging

from ibanservice.iban import is_parseable, parse_iban
from ibanservice.orchestrator.schemas import UNPARSEABLE_PREFIX, ValidationRequest, ValidationResult
from ibanservice.services.augmenter import BankDataAugmenter
from ibanservice.services.cache import NO_EXPIRY, ResultCache
from ibanservice.services.metrics import MetricsDispatcher

logger = logging.getLogger(__name__)

EMPTY_REQUEST_MESSAGE = "Empty request."

FALLBACK_BODY = json.dumps(
    {"valid": False, "message": "Internal serialization error."},
    indent=2,
)


def render(result: ValidationResult) -> str | None:
    """Canonical JSON body, or None if the result cannot be serialized."""
    try:
        return result.to_json()
    except (TypeError, ValueError) as e:
        logger.error("Serialization failed | %s", str(e)[:200])
        return None


class ValidationPipeline:
    """Cache-first IBAN validation with optional bank-data augmentation."""

    def __init__(
        self,
        cache: ResultCache,
        augmenter: BankDataAugmenter,
        metrics: MetricsDispatcher,
    ):
        self.cache = cache
        self.augmenter = augmenter
        self.metrics = metrics

    async def handle(
        self,
        raw_iban: str,
        validate_bank_code: str | None = None,
        get_bic: str | None = None,
    ) -> tuple[str, int]:
        request = ValidationRequest.from_query(raw_iban, validate_bank_code, get_bic)
        return await self.run(request)

    async def run(self, request: ValidationRequest) -> tuple[str, int]:
        key = request.cache_key

        cached = await self.cache.get(key)
        if cached is not None:
            self.metrics.log_cached_body(cached)
            return cached, 200

        if not request.raw_iban:
            result = ValidationResult(valid=False, message=EMPTY_REQUEST_MESSAGE)
            return render(result) or FALLBACK_BODY, 400

        parser_result = is_parseable(request.raw_iban)
        if not parser_result.valid:
            result = ValidationResult(
                valid=False,
                message=UNPARSEABLE_PREFIX + parser_result.message,
                ibanPrintFormat=request.raw_iban,
            )
            body = render(result)
            if body is None:
                body = FALLBACK_BODY
            else:
                # verdict depends only on the input string
                await self.cache.set(key, body, NO_EXPIRY)
            self.metrics.log_cached_body(body)
            return body, 200

        iban = parse_iban(request.raw_iban)
        result = iban.validate()

        if request.wants_augmentation:
            result = await self.augmenter.augment(iban, result, request)

        body = render(result)
        if body is None:
            body = FALLBACK_BODY
        else:
            await self.cache.set(key, body, self.cache.default_ttl)

        self.metrics.log_parsed_iban(iban)
        return body, 200
