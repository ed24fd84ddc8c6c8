"""HTTP transport with bearer credentials and normalized envelopes."""

from typing import Any, Callable, Dict, Optional, Union

import requests
from pydantic import BaseModel

from adminsync.transport.cancellation import CancellationToken
from adminsync.transport.credentials import CredentialStore
from adminsync.transport.errors import (
    CANCELLED,
    OFFLINE_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    TRANSIENT_MESSAGE,
    ApiError,
    AuthenticationRequired,
    _Cancelled,
)
from adminsync.utils.logging import get_logger

logger = get_logger(__name__)

ENVELOPE_META_KEYS = ("status", "message", "code", "responseCode")


class ApiResult(BaseModel):
    """Canonical success result. Nothing past the transport sees raw envelopes."""

    code: int
    status: str = "success"
    message: str = "success"
    data: Any = None


def _header_present(headers: Dict[str, str], name: str) -> bool:
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)


def _parse_json(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _unwrap_envelope(body: Any) -> Any:
    """
    Pull the payload out of a success envelope.

    Most endpoints answer {status, message, data}. A few put the payload
    beside the message instead ({message, disputes: [...]}); for those the
    remaining keys are the payload.
    """
    if not isinstance(body, dict):
        return body
    if "data" in body:
        return body["data"]
    remainder = {k: v for k, v in body.items() if k not in ENVELOPE_META_KEYS}
    return remainder or None


class TransportAdapter:
    """Issues requests against the REST backend."""

    def __init__(
        self,
        base_url: str,
        *,
        credentials: Optional[CredentialStore] = None,
        timeout_seconds: float = 30,
        user_agent: str = "adminsync/0.3",
        session: Optional[requests.Session] = None,
        is_online: Optional[Callable[[], bool]] = None,
        on_auth_required: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize transport.

        Args:
            base_url: Backend root, e.g. https://api.example.com
            credentials: Store the bearer token is read from and cleared in on 401
            timeout_seconds: Per-request bound (connect + read)
            session: Optional requests.Session (tests inject one)
            is_online: Connectivity signal used to word network failures
            on_auth_required: Called once per 401 after credentials are cleared
        """
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout_seconds
        self.user_agent = user_agent
        self.session = session or requests.Session()
        self.is_online = is_online
        self.on_auth_required = on_auth_required

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _build_headers(self, headers: Optional[Dict[str, str]], multipart: bool) -> Dict[str, str]:
        merged: Dict[str, str] = {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
        }
        merged.update(headers or {})

        if multipart:
            # requests must write the multipart boundary itself
            for key in [k for k in merged if k.lower() == "content-type"]:
                logger.debug("Dropping explicit Content-Type on multipart request")
                del merged[key]

        if self.credentials is not None and not _header_present(merged, "Authorization"):
            token = self.credentials.get_token()
            if token:
                merged["Authorization"] = f"Bearer {token}"
        return merged

    def _network_message(self) -> str:
        if self.is_online is not None and not self.is_online():
            return OFFLINE_MESSAGE
        return TRANSIENT_MESSAGE

    def _handle_unauthorized(self, status: str) -> AuthenticationRequired:
        if self.credentials is not None:
            self.credentials.clear()
        if self.on_auth_required is not None:
            self.on_auth_required()
        logger.warning("Backend rejected credentials (401); re-authentication required")
        return AuthenticationRequired(SESSION_EXPIRED_MESSAGE, status=status)

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Union[ApiResult, _Cancelled]:
        """
        Send one request and normalize the outcome.

        Args:
            method: HTTP method
            path: Path relative to base_url (or an absolute URL)
            body: JSON body, or form fields when files are given
            params: Query parameters; None values are dropped
            files: Multipart file parts (switches the body to multipart)
            headers: Extra headers; an explicit Authorization wins over the store
            cancel_token: Token whose cancellation turns the outcome into CANCELLED

        Returns:
            ApiResult on success, CANCELLED if the token fired

        Raises:
            AuthenticationRequired: On 401 (credentials already cleared)
            ApiError: On any other HTTP or network failure
        """
        if cancel_token is not None and cancel_token.cancelled:
            return CANCELLED

        multipart = files is not None
        request_headers = self._build_headers(headers, multipart)
        query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        url = self._url(path)

        kwargs: Dict[str, Any] = {
            "headers": request_headers,
            "params": query or None,
            "timeout": self.timeout,
        }
        if multipart:
            kwargs["data"] = body
            kwargs["files"] = files
        elif body is not None:
            kwargs["json"] = body

        logger.debug(f"{method.upper()} {url} params={query}")
        try:
            response = self.session.request(method.upper(), url, **kwargs)
        except requests.RequestException as e:
            if cancel_token is not None and cancel_token.cancelled:
                return CANCELLED
            message = self._network_message()
            logger.warning(f"{method.upper()} {url} failed before a response: {e}")
            raise ApiError(0, message) from e

        if cancel_token is not None and cancel_token.cancelled:
            logger.debug(f"Discarding response for cancelled {method.upper()} {url}")
            return CANCELLED

        payload = _parse_json(response)
        envelope = payload if isinstance(payload, dict) else {}
        status = envelope.get("status") or ("error" if response.status_code >= 400 else "success")

        if response.status_code == 401:
            raise self._handle_unauthorized(status)

        if response.status_code >= 400:
            message = envelope.get("message") or f"Request failed with status code {response.status_code}"
            logger.warning(f"{method.upper()} {url} -> {response.status_code}: {message}")
            raise ApiError(response.status_code, message, status=status)

        return ApiResult(
            code=response.status_code,
            status=status,
            message=envelope.get("message") or "success",
            data=_unwrap_envelope(payload),
        )
