"""Partner-ads XML program feed."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any

import httpx
from pydantic import ValidationError

from genveje.ingest.models import Catalog, Merchant, Source
from genveje.ingest.schemas import PartnerAdsProgram
from genveje.logic.categories import CategoryGrouper, generate_category_id, normalize_category_name
from genveje.utils.dates import now_ms
from genveje.utils.fetch import MalformedPayloadError, fetch_with_timeout, require_body
from genveje.utils.retry import fetch_with_retry

logger = logging.getLogger(__name__)

PARTNER_ADS_ENDPOINT = "https://www.partner-ads.com/dk/programoversigt_xml.php"


def parse_programs(xml_text: str) -> list[dict[str, Any]]:
    """Flatten ``<programs><program>`` children into dicts of tag -> text."""
    try:
        root = ET.fromstring(require_body(xml_text, "Partner-ads"))
    except ET.ParseError as exc:
        raise MalformedPayloadError(f"Invalid XML: {exc}") from exc
    if root.tag != "programs":
        raise MalformedPayloadError("Invalid XML structure: missing programs element")
    programs = []
    for element in root.findall("program"):
        programs.append({child.tag: (child.text or "").strip() for child in element})
    return programs


class PartnerAdsClient:
    def __init__(
        self,
        api_key: str,
        *,
        endpoint: str = PARTNER_ADS_ENDPOINT,
        session: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self.session = session or httpx.AsyncClient()
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def close(self) -> None:
        await self.session.aclose()

    async def fetch_catalog(self) -> Catalog:
        logger.info("Fetching data from Partner-ads")
        return await fetch_with_retry(
            self._fetch_once,
            max_retries=self.max_retries,
            base_delay=self.retry_delay,
            label="[Partner-ads]",
        )

    async def _fetch_once(self) -> Catalog:
        response = await fetch_with_timeout(
            self.session,
            "GET",
            self.endpoint,
            timeout=self.timeout,
            params={"key": self.api_key, "godkendte": 1},
        )
        programs = parse_programs(response.text)
        logger.info("Found %s total merchants", len(programs))
        return build_catalog(programs)


def build_catalog(programs: list[dict[str, Any]]) -> Catalog:
    grouper = CategoryGrouper()
    processed = skipped = invalid = 0

    for raw in programs:
        try:
            program = PartnerAdsProgram.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Invalid merchant data %s: %s", raw.get("programid"), exc.errors())
            invalid += 1
            continue

        if program.programid == "N/A" or program.status != "approved":
            skipped += 1
            continue

        category_name = normalize_category_name(program.kategorinavn)
        category_id = generate_category_id(category_name)
        grouper.add(
            category_id,
            category_name,
            Merchant(
                id=program.programid,
                display_name=program.programnavn,
                clean_url=program.programurl,
                affiliate_url=program.affiliatelink,
                category_id=category_id,
                status=program.status,
                source=Source.PARTNERADS,
            ),
        )
        processed += 1

    logger.info("Processed %s approved merchants", processed)
    if invalid:
        logger.info("Failed validation: %s merchants", invalid)
    if skipped:
        logger.info("Skipped %s unapproved merchants", skipped)
    logger.info("Organized into %s categories", len(grouper))
    return grouper.build(now_ms())
