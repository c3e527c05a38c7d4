"""
HTTP клиент к серверу perfbudget.
"""

from typing import Any, Dict, List, Optional

import httpx

TOKEN_HEADER = "X-Project-Token"


class ApiError(Exception):
    """Сервер ответил ошибкой или недоступен."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ApiClient:
    """Тонкая обёртка над /v1 API."""

    def __init__(self, base_url: str, token: str = "", timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers[TOKEN_HEADER] = self.token
        try:
            response = self.client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ApiError(f"Cannot reach {self.base_url}: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("message") or response.text
            except ValueError:
                message = response.text
            raise ApiError(f"{method} {path} failed ({response.status_code}): {message}", response.status_code)
        return response.json()

    # ==================== Projects ====================

    def list_projects(self) -> List[Dict]:
        return self._request("GET", "/v1/projects")

    def create_project(self, name: str, external_url: str = "") -> Dict:
        return self._request("POST", "/v1/projects", json={"name": name, "external_url": external_url})

    def find_project_by_token(self, token: str) -> Dict:
        return self._request("POST", "/v1/projects/lookup", json={"token": token})

    # ==================== Builds / Runs ====================

    def create_build(self, project_id: str, build: Dict) -> Dict:
        return self._request("POST", f"/v1/projects/{project_id}/builds", json=build)

    def create_run(self, project_id: str, build_id: str, url: str, lhr: str) -> Dict:
        return self._request(
            "POST",
            f"/v1/projects/{project_id}/builds/{build_id}/runs",
            json={"url": url, "lhr": lhr},
        )

    def list_runs(self, project_id: str, build_id: str) -> List[Dict]:
        return self._request("GET", f"/v1/projects/{project_id}/builds/{build_id}/runs")

    def health(self) -> Dict:
        return self._request("GET", "/health")
