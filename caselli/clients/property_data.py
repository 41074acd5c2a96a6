"""
Client for the property data API (RentCast-compatible).

`GET /properties?address=<full address>` returns a list of public-record
property objects. Only the fields the CRM stores are normalized; the raw
record is kept alongside for reference.
"""

from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from caselli.clients.http import TimeoutConfig, create_http_client
from caselli.config import Settings
from caselli.utils.logging import get_logger

logger = get_logger(__name__)


class EnrichmentError(Exception):
    """Property data could not be retrieved. Always non-fatal for callers."""

    pass


FIELD_MAP = {
    "bedrooms": "bedrooms",
    "bathrooms": "bathrooms",
    "squareFootage": "square_footage",
    "yearBuilt": "year_built",
    "lotSize": "lot_size",
    "propertyType": "property_type",
    "lastSalePrice": "last_sale_price",
    "lastSaleDate": "last_sale_date",
    "county": "county",
    "formattedAddress": "formatted_address",
}


def normalize_property(record: Dict[str, Any]) -> Dict[str, Any]:
    """Map API camelCase keys to snake_case, dropping missing values."""
    return {
        ours: record[theirs]
        for theirs, ours in FIELD_MAP.items()
        if record.get(theirs) is not None
    }


class PropertyDataClient:
    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = settings.property_api_key
        timeout = settings.property_api_timeout_seconds
        self.client = http_client or create_http_client(
            "property-data",
            settings.property_api_base_url,
            TimeoutConfig(connect_timeout=timeout, read_timeout=timeout),
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def close(self) -> None:
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, max=2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _get(self, params: Dict[str, Any]) -> httpx.Response:
        return await self.client.get(
            "/properties", params=params, headers={"X-Api-Key": self.api_key or ""}
        )

    async def lookup(
        self,
        address: str,
        city: Optional[str] = None,
        state: Optional[str] = None,
        zip_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Look up public-record data for one address.

        Returns:
            {"property": normalized fields, "raw": the API record}

        Raises:
            EnrichmentError: Missing API key, upstream failure, or no match
        """
        if not self.configured:
            raise EnrichmentError("Property data API key not configured")

        parts = [address.strip()]
        for part in (city, state):
            if part and part.lower() not in address.lower():
                parts.append(part.strip())
        full_address = ", ".join(parts)
        if zip_code and zip_code not in full_address:
            full_address = f"{full_address} {zip_code}"

        try:
            response = await self._get({"address": full_address, "limit": 1})
        except httpx.HTTPError as e:
            logger.warning("Property data request failed", error=str(e))
            raise EnrichmentError(f"Property data service unreachable: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "Property data API error",
                status_code=response.status_code,
                address=full_address,
            )
            raise EnrichmentError(
                f"Property data service returned HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise EnrichmentError("Property data service returned invalid JSON") from e

        record = data[0] if isinstance(data, list) and data else data
        if not isinstance(record, dict) or not record:
            raise EnrichmentError(f"No property records found for {full_address}")

        return {"property": normalize_property(record), "raw": record}
