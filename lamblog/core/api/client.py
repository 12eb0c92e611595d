from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from lamblog.core.config.models import ApiConfig
from lamblog.core.errors import ApiRequestError, ApiUnavailableError, AuthenticationError
from lamblog.core.session.models import UserIdentity, coerce_identity


AUTH_FAILURE_STATUSES = {401, 403}


@dataclass(frozen=True)
class LoginResult:
    identity: UserIdentity
    token: str


class AuthApiClient:
    """
    Lamblog Auth API over `requests`.

    Every request carries `Authorization: Bearer <token>` read from the tab's
    storage. A 401 on an authenticated call fires `on_unauthorized` (normally
    `SessionGuard.logout`) before the AuthenticationError propagates.
    """

    def __init__(
        self,
        *,
        cfg: Optional[ApiConfig] = None,
        storage: Any = None,
        token_key: str = "token",
        session: Optional[requests.Session] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
        logger=None,
    ):
        self.cfg = cfg or ApiConfig()
        self.storage = storage
        self.token_key = token_key
        self.session = session or requests.Session()
        self.on_unauthorized = on_unauthorized
        self.logger = logger

    def _url(self, path: str) -> str:
        return f"{self.cfg.backend_url.rstrip('/')}/{path.lstrip('/')}"

    def _headers(self, authenticated: bool) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if authenticated and self.storage is not None:
            token = self.storage.get(self.token_key)
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(self, method: str, path: str, *, json: Any = None, params: Optional[Dict[str, Any]] = None, authenticated: bool = True) -> requests.Response:
        url = self._url(path)
        try:
            r = self.session.request(method, url, json=json, params=params, headers=self._headers(authenticated), timeout=float(self.cfg.timeout_seconds))
        except requests.RequestException as e:
            if self.logger:
                self.logger.warning(f"API {method} {path} failed: {type(e).__name__}")
            raise ApiUnavailableError(method=method, path=path, error=type(e).__name__) from e

        status = int(r.status_code)
        if status in AUTH_FAILURE_STATUSES:
            if status == 401 and authenticated and self.on_unauthorized is not None:
                try:
                    self.on_unauthorized()
                except Exception as e:  # noqa: BLE001
                    if self.logger:
                        self.logger.error(f"on_unauthorized hook failed: {e}")
            raise AuthenticationError(method=method, path=path, status_code=status)
        if status >= 500:
            raise ApiUnavailableError(method=method, path=path, status_code=status)
        if status >= 400:
            raise ApiRequestError(_error_message(r) or "The request was rejected.", method=method, path=path, status_code=status)
        return r

    def login(self, email: str, password: str) -> LoginResult:
        try:
            r = self.request("POST", self.cfg.login_path, json={"email": email, "password": password}, authenticated=False)
        except ApiRequestError as e:
            # the login endpoint answers bad credentials with 400
            if e.context.get("status_code") == 400:
                raise AuthenticationError(e.user_message, path=self.cfg.login_path, status_code=400) from e
            raise
        data = _json_object(r, path=self.cfg.login_path)
        identity = coerce_identity(data.get("user"))
        token = data.get("token")
        if identity is None or not isinstance(token, str) or not token:
            raise ApiUnavailableError("Unexpected login response.", path=self.cfg.login_path)
        return LoginResult(identity=identity, token=token)

    def current_user(self) -> UserIdentity:
        r = self.request("GET", self.cfg.current_user_path)
        data = _json_object(r, path=self.cfg.current_user_path)
        identity = coerce_identity(data.get("user", data))
        if identity is None:
            raise ApiUnavailableError("Unexpected current-user response.", path=self.cfg.current_user_path)
        return identity


def _json_object(r: requests.Response, *, path: str) -> Dict[str, Any]:
    try:
        data = r.json()
    except ValueError as e:
        raise ApiUnavailableError("Malformed response from server.", path=path) from e
    if not isinstance(data, dict):
        raise ApiUnavailableError("Malformed response from server.", path=path)
    return data


def _error_message(r: requests.Response) -> Optional[str]:
    try:
        data = r.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        msg = data.get("message") or data.get("error")
        return str(msg) if msg else None
    return None
