"""Async HTTP resource provider backed by a resource gateway API.

Implements the ResourceProvider protocol over a small REST surface:
  POST   /v1/allocations                     allocate
  POST   /v1/allocations/{id}/bindings       bind
  DELETE /v1/bindings/{id}                   unbind
  DELETE /v1/allocations/{id}                release

Calls carry a static bearer token, which is never logged. Timeouts and
429/5xx replies are retried on the HTTP hop with jittered exponential
backoff, honouring Retry-After. Whether a failed operation is retried
as a whole is the caller's decision.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Mapping

import httpx

from ..errors import ProviderError, ProviderNotFoundError, ProviderTimeoutError
from ..models import Allocation, BindOptions, TargetDescriptor
from ..settings import ProvisionerSettings

logger = logging.getLogger(__name__)

# Statuses retried on the HTTP hop.
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 1.0  # seconds
_DEFAULT_MAX_DELAY = 30.0  # seconds


class HttpResourceProvider:
    """ResourceProvider speaking to the resource gateway over HTTP."""

    def __init__(
        self,
        *,
        bearer_token: str,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
    ) -> None:
        if not bearer_token:
            raise ValueError("bearer_token is required")
        if not base_url:
            raise ValueError("base_url is required")

        self._bearer_token = bearer_token
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._timeout = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    @classmethod
    def from_settings(
        cls,
        settings: ProvisionerSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> HttpResourceProvider:
        return cls(
            bearer_token=settings.provider_token,
            base_url=settings.provider_base_url,
            http_client=http_client,
            timeout_seconds=settings.provider_call_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
    ) -> dict[str, Any]:
        """Send one API call, retrying timeouts and retryable statuses.

        Returns the decoded JSON object body (empty for bodiless replies).
        """
        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {self._bearer_token}"}
        attempts = self._max_retries + 1

        for attempt in range(attempts):
            final = attempt == self._max_retries
            try:
                resp = await self._client.request(
                    method, url, headers=headers, json=json, timeout=self._timeout,
                )
            except httpx.TimeoutException as e:
                if final:
                    raise ProviderTimeoutError(str(e) or "request timed out") from e
                delay = self._delay(attempt)
                reason = "timeout"
            except httpx.TransportError as e:
                raise ProviderError(f"{method} {path} failed: {e}") from e
            else:
                if resp.status_code not in _RETRYABLE_STATUS_CODES or final:
                    return _decode(resp)
                delay = self._delay(attempt, resp.headers.get("retry-after"))
                reason = f"HTTP {resp.status_code}"

            logger.warning(
                "Provider %s %s: %s (attempt %d/%d), retrying in %.1fs",
                method, path, reason, attempt + 1, attempts, delay,
            )
            await asyncio.sleep(delay)

        raise ProviderError("exhausted retries with no response")

    def _delay(self, attempt: int, retry_after: str | None = None) -> float:
        """Server-requested Retry-After, else capped exponential backoff with full jitter."""
        if retry_after:
            try:
                return max(float(retry_after), 0.1)
            except ValueError:
                pass
        return random.uniform(0, min(self._base_delay * 2 ** attempt, self._max_delay))

    # ── ResourceProvider ─────────────────────────────────────────

    async def allocate(self, kind: str, params: Mapping[str, Any]) -> Allocation:
        body = await self._send(
            "POST", "/v1/allocations", json={"kind": kind, "params": dict(params)},
        )
        allocation_id = body.get("allocation_id")
        if not allocation_id:
            raise ProviderError("allocate response missing allocation_id")

        logger.info("Resource allocated: kind=%s allocation_id=%s", kind, allocation_id)
        return Allocation(allocation_id=allocation_id, public_ip=body.get("public_ip") or "")

    async def bind(
        self, allocation_id: str, target: TargetDescriptor, opts: BindOptions,
    ) -> str:
        body = await self._send(
            "POST",
            f"/v1/allocations/{allocation_id}/bindings",
            json={
                "target_id": target.instance_id,
                "allow_reassociation": opts.allow_reassociation,
            },
        )
        binding_id = body.get("binding_id")
        if not binding_id:
            raise ProviderError("bind response missing binding_id")
        return binding_id

    async def unbind(self, binding_id: str) -> None:
        await self._send("DELETE", f"/v1/bindings/{binding_id}")

    async def release(self, allocation_id: str) -> None:
        await self._send("DELETE", f"/v1/allocations/{allocation_id}")
        logger.info("Resource released: allocation_id=%s", allocation_id)


def _decode(resp: httpx.Response) -> dict[str, Any]:
    """Return the JSON object body of a success, or raise the mapped ProviderError."""
    try:
        payload = resp.json() if resp.content else {}
    except ValueError:
        payload = None

    if resp.status_code < 400:
        return payload if isinstance(payload, dict) else {}

    body = resp.text
    message = body[:200] or f"HTTP {resp.status_code}"
    if isinstance(payload, dict):
        message = payload.get("error") or payload.get("message") or message
    if resp.status_code == 404:
        raise ProviderNotFoundError(message, response_body=body)
    raise ProviderError(message, status_code=resp.status_code, response_body=body)
