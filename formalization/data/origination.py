"""Origination service client: approved terms of a credit request.

The origination service is the system of record for money, term and rate.
Contract creation reads from it and never writes back.
"""

import logging
from decimal import Decimal

import httpx

from formalization.config import settings
from formalization.data.cache import cached
from formalization.errors import OriginationError
from formalization.models.contracts import RequestSummary

logger = logging.getLogger(__name__)

SUMMARY_PATH = "/api/v1/solicitudes/{request_id}/resumen"


class OriginationClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.origination_base_url).rstrip("/")
        self.timeout = timeout or settings.origination_timeout
        self.transport = transport

    @cached(
        "origination:summary",
        ttl_seconds=lambda: settings.origination_cache_ttl_seconds,
        enabled=lambda: settings.origination_cache_enabled,
    )
    async def _fetch_summary(self, request_id: int) -> dict | None:
        """Raw summary payload, or None when the request is unknown upstream."""
        url = f"{self.base_url}{SUMMARY_PATH.format(request_id=request_id)}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(url, headers={"Accept": "application/json"})
                if resp.status_code == 404:
                    return None
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Origination request failed for %s: %s", request_id, e)
            raise OriginationError(request_id, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning("Origination service unreachable for %s: %s", request_id, e)
            raise OriginationError(request_id, str(e) or type(e).__name__) from e

    async def get_summary(self, request_id: int) -> RequestSummary | None:
        """Fetch the approved terms for a credit request."""
        data = await self._fetch_summary(request_id)
        if data is None:
            return None

        try:
            return RequestSummary(
                request_id=int(data.get("id_solicitud", request_id)),
                vehicle_price=Decimal(str(data["precio_final_vehiculo"])),
                approved_amount=Decimal(str(data["monto_aprobado"])),
                term_months=int(data["plazo_final_meses"]),
                annual_rate=Decimal(str(data["tasa_efectiva_anual"])),
            )
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise OriginationError(request_id, f"malformed summary: {e}") from e
