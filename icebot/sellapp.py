"""Sell.app invoice API client."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://sell.app/api/v2"
DEFAULT_TIMEOUT = 10.0


class SellAppError(Exception):
    """Base class for Sell.app API failures."""


class SellAppUnauthorized(SellAppError):
    """The API key was rejected (HTTP 401)."""


class InvoiceNotFound(SellAppError):
    """No invoice with that id (HTTP 404)."""


class SellAppUnavailable(SellAppError):
    """Network failure, timeout, or any other non-2xx response."""


class SellAppClient:
    """Thin async HTTP client for the Sell.app invoice API."""

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base = api_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
                "User-Agent": "ICEBot/1.0",
            },
            transport=transport,
        )

    # -- Invoices --

    async def get_invoice(self, invoice_id: str) -> dict | None:
        """Fetch one invoice, unwrapped from its ``data`` envelope.

        Returns None when the API answers with an empty body.
        """
        payload = await self._get(f"/invoices/{quote(invoice_id, safe='')}")
        if isinstance(payload, dict) and "data" in payload:
            payload = payload["data"]
        return payload or None

    async def aclose(self) -> None:
        await self._http.aclose()

    # -- Internal --

    async def _get(self, path: str):
        try:
            r = await self._http.get(path)
            r.raise_for_status()
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            logger.error("Sell.app API error: HTTP %s on GET %s", code, path)
            if code == 401:
                raise SellAppUnauthorized(path) from exc
            if code == 404:
                raise InvoiceNotFound(path) from exc
            raise SellAppUnavailable(f"HTTP {code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Sell.app request failed: %s", exc)
            raise SellAppUnavailable(str(exc)) from exc

        if not r.content.strip():
            return None
        try:
            return r.json()
        except ValueError as exc:
            logger.error("Sell.app returned a non-JSON body for GET %s", path)
            raise SellAppUnavailable("invalid JSON") from exc
