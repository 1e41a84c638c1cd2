"""HTTP client for the Finance Tracker API.

Attaches the stored bearer token to every request and treats any 401/403
response as a forced logout: the token is cleared and ``on_logout`` is
invoked before :class:`SessionExpired` is raised.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional, Protocol
from urllib.parse import quote

import httpx
from pydantic_core import to_jsonable_python

from config import get_client_settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SessionExpired(ApiError):
    pass


class TokenStore(Protocol):
    def get(self) -> Optional[str]: ...

    def set(self, token: str) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStore:
    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileTokenStore:
    """Persists the token in a single file, the client's only durable state."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else get_client_settings().token_path

    def get(self) -> Optional[str]:
        if not self.path.exists():
            return None
        token = self.path.read_text(encoding="utf-8").strip()
        return token or None

    def set(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token, encoding="utf-8")
        self.path.chmod(0o600)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class ApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        token_store: Optional[TokenStore] = None,
        *,
        http: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
        on_logout: Optional[Callable[[], None]] = None,
    ) -> None:
        client_settings = get_client_settings()
        self.base_url = (base_url or client_settings.api_url).rstrip("/")
        self.token_store = token_store if token_store is not None else FileTokenStore()
        self.on_logout = on_logout
        self.http = http or httpx.Client(
            timeout=timeout or client_settings.timeout_secs,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    def close(self) -> None:
        self.http.close()

    @property
    def has_token(self) -> bool:
        return bool(self.token_store.get())

    def _force_logout(self) -> None:
        self.token_store.clear()
        if self.on_logout is not None:
            self.on_logout()

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        headers = {}
        token = self.token_store.get()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = self.http.request(
                method,
                f"{self.base_url}{path}",
                json=to_jsonable_python(json) if json is not None else None,
                params=params or None,
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise ApiError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise ApiError(f"{method} {path} failed: {exc}") from exc

        if response.status_code in (401, 403):
            message = _error_message(response)
            logger.info(f"forced_logout: status={response.status_code} path={path}")
            self._force_logout()
            raise SessionExpired(message, response.status_code)
        if response.is_error:
            raise ApiError(_error_message(response), response.status_code)
        return response.json()

    # auth
    def register(self, username: str, password: str, email: str) -> dict:
        return self.request(
            "POST",
            "/auth/register",
            json={"username": username, "password": password, "email": email},
        )

    def login(self, username: str, password: str) -> dict:
        return self.request(
            "POST", "/auth/login", json={"username": username, "password": password}
        )

    def logout(self) -> dict:
        return self.request("POST", "/auth/logout")

    def get_profile(self) -> dict:
        return self.request("GET", "/auth/profile")

    # transactions
    def list_transactions(self, **filters: Any) -> list[dict]:
        return self.request("GET", "/transactions", params=filters)

    def get_transaction(self, transaction_id: int) -> dict:
        return self.request("GET", f"/transactions/{transaction_id}")

    def create_transaction(self, payload: dict) -> dict:
        return self.request("POST", "/transactions", json=payload)

    def update_transaction(self, transaction_id: int, payload: dict) -> dict:
        return self.request("PUT", f"/transactions/{transaction_id}", json=payload)

    def delete_transaction(self, transaction_id: int) -> dict:
        return self.request("DELETE", f"/transactions/{transaction_id}")

    # budgets
    def list_budgets(self) -> list[dict]:
        return self.request("GET", "/budgets")

    def get_budget(self, category: str) -> dict:
        return self.request("GET", f"/budgets/category/{_quote(category)}")

    def create_budget(self, payload: dict) -> dict:
        return self.request("POST", "/budgets", json=payload)

    def update_budget(self, category: str, payload: dict) -> dict:
        return self.request(
            "PUT", f"/budgets/category/{_quote(category)}", json=payload
        )

    def delete_budget(self, category: str) -> dict:
        return self.request("DELETE", f"/budgets/category/{_quote(category)}")

    def budget_progress(self, month: Optional[str] = None) -> list[dict]:
        return self.request("GET", "/budgets/progress", params={"month": month})

    # settings
    def get_settings(self) -> dict:
        return self.request("GET", "/settings")

    def update_settings(self, payload: dict) -> dict:
        return self.request("PUT", "/settings", json=payload)


def _quote(segment: str) -> str:
    return quote(segment, safe="")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"
