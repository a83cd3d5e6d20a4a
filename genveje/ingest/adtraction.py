"""Adtraction partner programs API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from pydantic import ValidationError

from genveje.ingest.models import Catalog, Merchant, Source
from genveje.ingest.schemas import AdtractionProgram
from genveje.logic.categories import (
    DEFAULT_CATEGORY,
    CategoryGrouper,
    generate_category_id,
    normalize_category_name,
)
from genveje.logic.urls import encode_component, ensure_absolute_url
from genveje.utils.dates import now_ms
from genveje.utils.fetch import MalformedPayloadError, fetch_with_timeout, require_body
from genveje.utils.retry import fetch_with_retry

logger = logging.getLogger(__name__)

ADTRACTION_ENDPOINT = "https://api.adtraction.com/v3/partner/programs/"
TRACKING_URL = "https://track.adtraction.com/t/t?a={ad_id}&as={program_id}&t=2&url={url}"


class PayloadShape(str, Enum):
    LIST = "list"
    PROGRAMS = "programs"
    DATA = "data"


@dataclass(slots=True)
class ProgramsPayload:
    shape: PayloadShape
    programs: list[Any]


def classify_payload(payload: Any) -> ProgramsPayload:
    """Resolve the response envelope; the API answers in three shapes."""
    if isinstance(payload, list):
        return ProgramsPayload(PayloadShape.LIST, payload)
    if isinstance(payload, dict):
        if isinstance(payload.get("programs"), list):
            return ProgramsPayload(PayloadShape.PROGRAMS, payload["programs"])
        if isinstance(payload.get("data"), list):
            return ProgramsPayload(PayloadShape.DATA, payload["data"])
        raise MalformedPayloadError(
            "Invalid API response: expected array or object with programs array. "
            f"Got object with keys: {', '.join(sorted(payload))}"
        )
    raise MalformedPayloadError(
        f"Invalid API response: expected array or object, got {type(payload).__name__}"
    )


def tracking_url(ad_id: int, program_id: int, program_url: str) -> str:
    return TRACKING_URL.format(ad_id=ad_id, program_id=program_id, url=encode_component(program_url))


class AdtractionClient:
    def __init__(
        self,
        token: str,
        *,
        market: str = "DK",
        endpoint: str = ADTRACTION_ENDPOINT,
        session: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self.token = token
        self.market = market
        self.endpoint = endpoint
        self.session = session or httpx.AsyncClient()
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def close(self) -> None:
        await self.session.aclose()

    async def fetch_catalog(self) -> Catalog:
        logger.info("Fetching data from Adtraction")
        return await fetch_with_retry(
            self._fetch_once,
            max_retries=self.max_retries,
            base_delay=self.retry_delay,
            label="[Adtraction]",
        )

    async def _fetch_once(self) -> Catalog:
        # approval filters in the request body return nothing; filter client-side
        response = await fetch_with_timeout(
            self.session,
            "POST",
            self.endpoint,
            timeout=self.timeout,
            params={"token": self.token},
            json={"market": self.market},
        )
        try:
            payload = json.loads(require_body(response.text, "Adtraction"))
        except json.JSONDecodeError as exc:
            raise MalformedPayloadError(f"Invalid JSON: {exc}") from exc
        resolved = classify_payload(payload)
        logger.info("Found %s total programs (%s envelope)", len(resolved.programs), resolved.shape.value)
        return build_catalog(resolved.programs)


def build_catalog(programs: list[Any]) -> Catalog:
    grouper = CategoryGrouper()
    processed = skipped = invalid = 0

    for raw in programs:
        try:
            program = AdtractionProgram.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Invalid program data: %s", exc.errors())
            invalid += 1
            continue

        if program.status != 0:
            continue
        clean_url = ensure_absolute_url(program.program_url)
        if not clean_url or not program.ad_id:
            skipped += 1
            continue

        category_name = normalize_category_name(
            program.category_name or program.category or DEFAULT_CATEGORY
        )
        category_id = generate_category_id(category_name)
        grouper.add(
            category_id,
            category_name,
            Merchant(
                id=str(program.program_id),
                display_name=program.program_name,
                clean_url=clean_url,
                affiliate_url=tracking_url(program.ad_id, program.program_id, program.program_url),
                category_id=category_id,
                status="approved",
                source=Source.ADTRACTION,
            ),
        )
        processed += 1

    logger.info("Processed %s active programs", processed)
    if invalid:
        logger.info("Failed validation: %s programs", invalid)
    if skipped:
        logger.info("Skipped %s programs with missing URL fields", skipped)
    logger.info("Organized into %s categories", len(grouper))
    return grouper.build(now_ms())
