"""
HTTP client for the Simulive backend.
"""

from typing import Any, Dict, List, Optional
from uuid import uuid4

import httpx


class SimuliveAPIError(RuntimeError):
    def __init__(self, status_code: int, body: str, request_id: Optional[str] = None):
        super().__init__(f"API request failed: {status_code} {body} (request {request_id})")
        self.status_code = status_code
        self.body = body
        self.request_id = request_id


class SimuliveClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout_s: float = 10.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(base_url=self.base_url, timeout=timeout_s)

    async def __aenter__(self) -> "SimuliveClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "X-Request-ID": uuid4().hex}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self.http.request(method, path, headers=self._headers(), **kwargs)
        if response.status_code >= 400:
            raise SimuliveAPIError(response.status_code, response.text, response.headers.get("x-request-id"))
        return response.json()

    # ---- auth ----

    async def guest_login(self, session_key: str, name: str, email: Optional[str] = None) -> Dict[str, Any]:
        """Log in as a guest and keep the returned token for later calls"""
        data = await self._request(
            "POST",
            "/auth/guest-login",
            json={"session_id": session_key, "name": name, "email": email},
        )
        self.token = data["token"]
        return data

    # ---- sessions ----

    async def get_session(self, session_key: str) -> Dict[str, Any]:
        return await self._request("GET", f"/sessions/{session_key}")

    async def list_sessions(self, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"limit": limit}
        if status:
            params["status"] = status
        data = await self._request("GET", "/student/sessions", params=params)
        return data["sessions"]

    async def create_session(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Admin only"""
        return await self._request("POST", "/admin/sessions", json=payload)

    # ---- chat ----

    async def trigger(self, session_key: str, offset_seconds: int) -> None:
        await self._request(
            "POST",
            "/chat/trigger-admin-message",
            json={"sessionId": session_key, "offsetSeconds": offset_seconds},
        )

    async def send_chat(self, session_key: str, message: str, message_type: str = "user") -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/chat/send",
            json={"sessionId": session_key, "message": message, "type": message_type},
        )

    async def chat_history(self, session_key: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"limit": limit} if limit else None
        data = await self._request("GET", f"/chat/history/{session_key}", params=params)
        return data["messages"]

    async def hand_raise(self, session_key: str, is_raised: bool) -> None:
        await self._request(
            "POST",
            "/student/hand-raise",
            json={"sessionId": session_key, "isRaised": is_raised},
        )

    # ---- realtime ----

    async def channel_auth(self, socket_id: str, channel_name: str) -> Dict[str, str]:
        return await self._request(
            "POST",
            "/channels/auth",
            json={"socket_id": socket_id, "channel_name": channel_name},
        )

    def realtime_url(self) -> str:
        url = self.base_url.replace("https://", "wss://", 1).replace("http://", "ws://", 1)
        return f"{url}/realtime?token={self.token}"
