"""
client/api.py -- Thin HTTP wrapper around the Taskboard REST API.

One requests.Session is shared across calls for connection pooling. Any
object with the same request(method, url, **kwargs) signature can be passed
as `http` instead (tests pass an adapter around FastAPI's TestClient).

401 policy:
  Every 401 response, whatever the server's reason code, invokes the
  on_unauthorized callback before the Unauthorized error is raised. The
  session context wires that callback to its own clear(), so an expired or
  revoked token anywhere logs the client out.

Network failures are wrapped in ApiError with status_code 0.
"""

import logging
from typing import Any, Callable, Optional

import requests

logger = logging.getLogger("taskboard.client.api")

DEFAULT_BASE_URL = "http://localhost:8000/api"


class ApiError(Exception):
    """An error response (or a transport failure) from the API."""

    def __init__(self, status_code: int, message: str, code: str = "", payload: Optional[dict] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.payload = payload or {}

    @property
    def field_errors(self) -> list[dict]:
        return list(self.payload.get("errors") or [])


class Unauthorized(ApiError):
    pass


class ApiClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        http: Any = None,
        timeout: float = 10,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token_provider = token_provider
        self.on_unauthorized = on_unauthorized
        if http is None:
            http = requests.Session()
            http.max_redirects = 3
        self._http = http

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def register(self, username: str, email: str, password: str, name: str) -> dict:
        body = {"username": username, "email": email, "password": password, "name": name}
        return self._request("POST", "/auth/register", json=body, auth=False)

    def login(self, email: str, password: str) -> dict:
        return self._request("POST", "/auth/login", json={"email": email, "password": password}, auth=False)

    def verify(self) -> dict:
        return self._request("GET", "/auth/verify")

    def update_profile(self, fields: dict, image: Optional[tuple] = None) -> dict:
        """PUT /auth/profile as multipart.

        fields holds form values (location already JSON-encoded). image is a
        (filename, fileobj, content_type) tuple or None.
        """
        files = {"profileImage": image} if image is not None else None
        return self._request("PUT", "/auth/profile", data=fields, files=files)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def list_tasks(self) -> list[dict]:
        return self._request("GET", "/tasks")

    def create_task(self, task: dict) -> dict:
        return self._request("POST", "/tasks", json=task)

    def update_task(self, task_id: int, fields: dict) -> dict:
        return self._request("PATCH", f"/tasks/{task_id}", json=fields)

    def delete_task(self, task_id: int) -> dict:
        return self._request("DELETE", f"/tasks/{task_id}")

    def task_summary(self) -> dict:
        return self._request("GET", "/tasks/summary")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, auth: bool = True, **kwargs) -> Any:
        headers: dict[str, str] = {}
        if auth and self.token_provider is not None:
            token = self.token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        kwargs = {k: v for k, v in kwargs.items() if v is not None}

        try:
            resp = self._http.request(method, self.base_url + path, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ApiError(0, f"Could not reach the server: {e}") from e

        if resp.status_code < 400:
            return resp.json()

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        message = payload.get("message") or f"HTTP {resp.status_code}"
        code = payload.get("code", "")
        logger.info("%s %s -> %d %s", method, path, resp.status_code, code)

        if resp.status_code == 401:
            if self.on_unauthorized is not None:
                self.on_unauthorized()
            raise Unauthorized(401, message, code, payload)
        raise ApiError(resp.status_code, message, code, payload)
