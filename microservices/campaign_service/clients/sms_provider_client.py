"""
SMS Provider Client

Client for the Mitto messaging HTTP API. One call sends one SMS.

Errors are classified by status code only: every failure surfaces as
ProviderError(status_code=...), with status_code None for transport errors
and timeouts. Retrying is left to the task queue.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from core.config import ProviderConfig

from ..protocols import ProviderError

logger = logging.getLogger(__name__)


class MittoClient:
    """Client for the Mitto SMS API"""

    SEND_PATH = "/api/v1.1/Messages/send"

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if config is None:
            config = ProviderConfig.from_env()

        self.base_url = config.api_base.rstrip("/")
        self.api_key = config.api_key
        self.traffic_account_id = config.traffic_account_id
        self.timeout = config.timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"X-Mitto-API-Key": self.api_key or ""},
            )
        return self._client

    async def send_sms(self, destination: str, text: str, sender: str) -> Dict[str, Any]:
        """
        Send one SMS.

        Returns:
            {"provider_message_id": str | None, "raw": provider response}

        Raises:
            ProviderError: non-2xx response (status_code set) or transport
                failure / timeout (status_code None)
        """
        body = {
            "trafficAccountId": self.traffic_account_id,
            "destination": destination,
            "sms": {"text": text, "sender": sender},
        }

        try:
            response = await self._get_client().post(self.SEND_PATH, json=body)
        except httpx.TimeoutException as e:
            logger.warning(f"Mitto send to {destination} timed out: {e}")
            raise ProviderError(f"Mitto timeout: {e}", status_code=None) from e
        except httpx.HTTPError as e:
            logger.warning(f"Mitto send to {destination} failed: {e}")
            raise ProviderError(f"Mitto transport error: {e}", status_code=None) from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        if response.is_error:
            detail = data.get("message") or data.get("error") or response.reason_phrase
            raise ProviderError(
                f"Mitto {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        provider_message_id = data.get("messageId") or data.get("id")
        if provider_message_id is None and isinstance(data.get("messages"), list) and data["messages"]:
            provider_message_id = data["messages"][0].get("messageId")

        return {
            "provider_message_id": str(provider_message_id) if provider_message_id else None,
            "raw": data,
        }

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["MittoClient"]
