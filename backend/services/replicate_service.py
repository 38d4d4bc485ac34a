import asyncio
import logging
from typing import Any

import aiohttp

from utils.env import settings
from utils.errors import ModelInvocationError

logger = logging.getLogger("replicate_service")

TERMINAL_PREDICTION_STATES = ("succeeded", "failed", "canceled")


def split_model_id(model_id: str) -> tuple[str, str | None]:
    """Split "owner/name:version" into ("owner/name", version)."""
    name, _, version = model_id.partition(":")
    if not version or version == "latest":
        return name, None
    return name, version


class ReplicateService:
    """Runs a named model on Replicate and returns its output.

    No retries here: callers decide what a failure means.
    """

    def __init__(self) -> None:
        self.base_url = settings.REPLICATE_API_BASE_URL.rstrip("/")
        self.poll_interval = settings.REPLICATE_POLL_INTERVAL_SECONDS
        self.request_timeout = settings.REPLICATE_REQUEST_TIMEOUT_SECONDS
        self._session: aiohttp.ClientSession | None = None

    def ensure_configured(self) -> str:
        return settings.require_replicate_token()

    async def ensure_session(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.request_timeout))

    async def close_session(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.ensure_configured()}",
            "Content-Type": "application/json",
            "Prefer": "wait",
        }

    async def _request(self, method: str, url: str, model_id: str, payload: dict | None = None) -> dict:
        await self.ensure_session()
        assert self._session is not None
        try:
            async with self._session.request(method, url, json=payload, headers=self._headers()) as response:
                if response.status == 429:
                    raise ModelInvocationError(
                        f"{model_id}: too many requests (HTTP 429)",
                        model_id=model_id,
                        status_code=429,
                    )
                if response.status >= 400:
                    detail = await response.text()
                    try:
                        body = await response.json(content_type=None)
                        if isinstance(body, dict):
                            detail = body.get("detail") or body.get("title") or detail
                    except ValueError:
                        pass
                    raise ModelInvocationError(
                        f"{model_id}: HTTP {response.status}: {detail}",
                        model_id=model_id,
                        status_code=response.status,
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise ModelInvocationError(
                f"{model_id}: request timed out after {self.request_timeout:g}s", model_id=model_id
            ) from exc
        except aiohttp.ClientError as exc:
            raise ModelInvocationError(f"{model_id}: request failed: {exc}", model_id=model_id) from exc

    async def _create_prediction(self, model_id: str, model_input: dict) -> dict:
        name, version = split_model_id(model_id)
        if version:
            url = f"{self.base_url}/predictions"
            payload = {"version": version, "input": model_input}
        else:
            url = f"{self.base_url}/models/{name}/predictions"
            payload = {"input": model_input}
        return await self._request("POST", url, model_id, payload)

    async def _wait_for_prediction(self, model_id: str, prediction: dict) -> dict:
        while prediction.get("status") not in TERMINAL_PREDICTION_STATES:
            poll_url = (prediction.get("urls") or {}).get("get")
            if not poll_url:
                poll_url = f"{self.base_url}/predictions/{prediction.get('id')}"
            await asyncio.sleep(self.poll_interval)
            prediction = await self._request("GET", poll_url, model_id)
            logger.debug(f"{model_id}: prediction {prediction.get('id')} is {prediction.get('status')}")
        return prediction

    async def run(self, model_id: str, model_input: dict) -> Any:
        logger.info(f"Running {model_id}")
        prediction = await self._create_prediction(model_id, model_input)
        prediction = await self._wait_for_prediction(model_id, prediction)

        status = prediction.get("status")
        if status != "succeeded":
            error = prediction.get("error") or f"prediction {status}"
            logger.error(f"{model_id}: prediction {prediction.get('id')} {status}: {error}")
            raise ModelInvocationError(f"{model_id}: {error}", model_id=model_id)

        logger.info(f"{model_id}: prediction {prediction.get('id')} succeeded")
        return prediction.get("output")

    async def fetch_bytes(self, url: str) -> bytes:
        await self.ensure_session()
        assert self._session is not None
        try:
            async with self._session.get(url) as response:
                if response.status != 200:
                    raise ModelInvocationError(f"Failed to fetch generated artifact (HTTP {response.status})")
                return await response.read()
        except asyncio.TimeoutError as exc:
            raise ModelInvocationError(f"Timed out fetching generated artifact after {self.request_timeout:g}s") from exc
        except aiohttp.ClientError as exc:
            raise ModelInvocationError(f"Failed to fetch generated artifact: {exc}") from exc
