"""Base classes for step dispatchers."""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from ..constants import DEFAULT_DISPATCH_TIMEOUT
from ..contracts import StepBase
from ..errors import DispatchError, MeopError, StepConfigurationError

logger = logging.getLogger(__name__)


class DispatchContext(BaseModel):
    """Per-run state a dispatcher may read. Never shared between runs."""

    execution_id: Optional[str] = None
    input_data: Dict[str, Any] = Field(default_factory=dict)
    last_result: Optional[str] = None
    may_block: bool = False


class DispatchResult(BaseModel):
    """Uniform ``(result, error)`` outcome of one dispatch."""

    result: Optional[str] = None
    error: Optional[str] = None
    request_url: Optional[str] = None
    request_payload: Optional[Dict[str, Any]] = None
    response_body: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BaseDispatcher(metaclass=abc.ABCMeta):
    """Performs the side effect of one step kind."""

    kind: str = ""

    async def dispatch(self, step: StepBase, context: DispatchContext) -> DispatchResult:
        """Run the step and fold any failure into the returned result."""
        trace = DispatchResult()
        try:
            trace.result = await self._execute(step, context, trace)
        except MeopError as e:
            trace.error = str(e)
        except Exception as e:
            logger.exception(f"Unexpected error dispatching step {step.id} ({self.kind})")
            trace.error = f"{type(e).__name__}: {e}"
        return trace

    @abc.abstractmethod
    async def _execute(
        self, step: StepBase, context: DispatchContext, trace: DispatchResult
    ) -> str:
        """Perform the side effect and return a confirmation string.

        Raises:
            StepConfigurationError: Mandatory configuration is missing.
            DispatchError: The outbound call failed.
        """
        raise NotImplementedError


class WebhookDispatcher(BaseDispatcher):
    """Dispatcher that makes exactly one JSON POST to a relay endpoint."""

    label: str = "Webhook"

    def __init__(
        self,
        url: Optional[str],
        timeout: float = DEFAULT_DISPATCH_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client

    def _require_url(self) -> str:
        if not self.url:
            raise StepConfigurationError(f"No webhook configured for {self.kind}")
        return self.url

    async def _send(self, client: httpx.AsyncClient, url: str, payload: dict) -> httpx.Response:
        return await asyncio.wait_for(
            client.post(url, json=payload, timeout=self.timeout), self.timeout
        )

    async def _post(self, payload: Dict[str, Any], trace: DispatchResult) -> httpx.Response:
        """POST ``payload`` and raise ``DispatchError`` unless the relay answers 2xx."""
        url = self._require_url()
        trace.request_url = url
        trace.request_payload = payload
        logger.debug(f"POST {url} ({self.kind})")

        try:
            if self._client is not None:
                response = await self._send(self._client, url, payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._send(client, url, payload)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise DispatchError(
                f"{self.label} timed out after {self.timeout:g}s"
            ) from e
        except httpx.HTTPError as e:
            raise DispatchError(f"{self.label} failed: {e}") from e

        trace.response_body = response.text
        if not response.is_success:
            raise DispatchError(
                f"{self.label} failed: {response.status_code} - {response.text}"
            )
        return response
