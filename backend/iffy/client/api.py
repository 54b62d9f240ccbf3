"""
HTTP client for the gift endpoints.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

QUOTA_EXCEEDED_CODE = "QUOTA_EXCEEDED"


class ApiError(Exception):
    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body}")


class QuotaExceeded(ApiError):
    """The server rejected the submission because the model quota ran out."""


def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class IffyApiClient:
    def __init__(self, base_url: str = "http://localhost:8000", client: Optional[httpx.AsyncClient] = None, timeout: float = 120.0):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "IffyApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        body = _body(response)
        if isinstance(body, dict) and body.get("error") == QUOTA_EXCEEDED_CODE:
            raise QuotaExceeded(response.status_code, body)
        raise ApiError(response.status_code, body)

    async def submit(self, image: bytes, filename: str = "photo.png", content_type: str = "image/png") -> Dict[str, Any]:
        response = await self._client.post("/gift", files={"image": (filename, image, content_type)})
        self._raise_for_status(response)
        return response.json()

    async def fetch(self, iffy_id: str) -> Dict[str, Any]:
        response = await self._client.get("/gift", params={"id": iffy_id})
        self._raise_for_status(response)
        return response.json()
