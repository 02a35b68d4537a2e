"""Async HTTP client for the taskboard backend."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .. import config

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-success response from the backend."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.code = code


def _raise_for_error(response: httpx.Response) -> None:
    if response.is_success:
        return
    message = response.reason_phrase or "request failed"
    code = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message", message)
            code = error.get("code")
        elif isinstance(error, str):
            message = error
        elif "detail" in body:
            message = str(body["detail"])
    raise ApiError(response.status_code, message, code)


class BoardApi:
    """Board snapshot and reorder calls.

    ``transport`` lets callers swap the network for an in-process ASGI app
    or a mock.
    """

    def __init__(
        self,
        token: str,
        base_url: str = config.API_BASE_URL,
        timeout: float = config.API_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> BoardApi:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_board(self, board_id: str) -> Dict[str, Any]:
        response = await self._client.get(f"/boards/{board_id}")
        _raise_for_error(response)
        return response.json()

    async def reorder_cards(self, cards: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        response = await self._client.patch("/cards/reorder", json={"cards": cards})
        _raise_for_error(response)
        return response.json().get("cards", [])

    async def reorder_lists(self, lists: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        response = await self._client.patch("/lists/reorder", json={"lists": lists})
        _raise_for_error(response)
        return response.json().get("lists", [])
