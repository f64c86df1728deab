"""
PVE API session client.

Authenticates with a ticket from /access/ticket and relays GET/POST calls,
attaching the ticket cookie and, for POST, the CSRF prevention token.
Every public call returns an ApiResult instead of raising for network or
API errors.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

from .config import PveConfig
from .models import ApiResult, Outcome, Session

logger = logging.getLogger(__name__)

AUTH_COOKIE = "PVEAuthCookie"
CSRF_HEADER = "CSRFPreventionToken"


class PveAPIError(Exception):
    """
    Exception raised for PVE API errors.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class PveAuthenticationError(PveAPIError):
    """
    Raised when the API rejects the credentials or the ticket.
    """


class PveConnectionError(PveAPIError):
    """
    Raised when the API cannot be reached.
    """


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PveClient:
    """
    Client for the PVE JSON API holding at most one session.
    """

    def __init__(
        self,
        config: PveConfig,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the PVE client.

        Args:
            config: PveConfig instance with connection details.
            transport: Optional httpx transport, mainly for tests.
            clock: Optional callable returning the current aware datetime.
        """
        self.config = config
        self.base_url = config.base_url
        self._transport = transport
        self._clock = clock or _utcnow
        self._client: Optional[httpx.Client] = None
        self._session: Optional[Session] = None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def client(self) -> httpx.Client:
        """
        Get or create the HTTP client.
        """
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.config.timeout,
                verify=self.config.tls_verify,
                transport=self._transport,
            )
        return self._client

    def has_valid_ticket(self) -> bool:
        """
        Check for a held, unexpired ticket. An expired one is discarded.
        """
        if self._session is None:
            return False
        if not self._session.is_valid(self._clock()):
            logger.info(
                "PVE ticket for %s expired at %s, discarding it",
                self.config.host,
                self._session.expires_at.isoformat(),
            )
            self._session = None
            return False
        return True

    def _auth_headers(self, csrf: bool = False) -> dict[str, str]:
        headers = {"Cookie": f"{AUTH_COOKIE}={self._session.ticket}"}
        if csrf:
            headers[CSRF_HEADER] = self._session.csrf_token
        return headers

    def _handle_response(self, response: httpx.Response) -> Any:
        """
        Return the `data` field of a response, raising on errors.
        """
        if response.status_code >= 400:
            # PVE puts its error message into the reason phrase
            message = response.reason_phrase or response.text or f"HTTP {response.status_code}"
            if response.status_code == 401:
                raise PveAuthenticationError(message, response.status_code)
            raise PveAPIError(message, response.status_code)

        try:
            body = response.json()
        except ValueError:
            raise PveAPIError("Invalid JSON response", response.status_code)

        if not isinstance(body, dict) or "data" not in body:
            raise PveAPIError("Response has no data field", response.status_code)
        return body["data"]

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)
        try:
            response = self.client.request(
                method, url, params=params, data=data, headers=headers
            )
        except httpx.HTTPError as e:
            raise PveConnectionError(f"Request to {url} failed: {e}") from e
        return self._handle_response(response)

    def _call(self, method: str, path: str, **kwargs: Any) -> ApiResult:
        try:
            data = self._request(method, path, **kwargs)
        except PveAuthenticationError as e:
            return ApiResult(
                outcome=Outcome.NOT_AUTHENTICATED, error=e.message, status_code=e.status_code
            )
        except PveConnectionError as e:
            return ApiResult(outcome=Outcome.TRANSPORT_ERROR, error=e.message)
        except PveAPIError as e:
            return ApiResult(outcome=Outcome.API_ERROR, error=e.message, status_code=e.status_code)
        return ApiResult(outcome=Outcome.OK, data=data)

    def login(self) -> ApiResult:
        """
        Log in and hold a new session, unless a valid one is already held.

        Returns:
            ApiResult carrying the Session on success. On failure no
            session is held.
        """
        if self.has_valid_ticket():
            return ApiResult(outcome=Outcome.OK, data=self._session)

        if self.config.password is None:
            return ApiResult(outcome=Outcome.NOT_AUTHENTICATED, error="No password configured")

        form = {
            "realm": self.config.realm.value,
            "username": self.config.username,
            "password": self.config.password.get_secret_value(),
        }
        result = self._call("POST", "/access/ticket", data=form)
        if not result.ok:
            logger.warning(
                "Login to %s as %s@%s failed: %s",
                self.config.host,
                self.config.username,
                self.config.realm.value,
                result.error,
            )
            return result

        data = result.data
        if not isinstance(data, dict) or not data.get("ticket"):
            logger.warning("Login response from %s carried no ticket", self.config.host)
            return ApiResult(
                outcome=Outcome.NOT_AUTHENTICATED, error="Login response carried no ticket"
            )

        self._session = Session(
            ticket=data["ticket"],
            csrf_token=data.get("CSRFPreventionToken", ""),
            issued_at=self._clock(),
            username=data.get("username"),
        )
        logger.info("Logged in to %s as %s", self.config.host, self._session.username)
        return ApiResult(outcome=Outcome.OK, data=self._session)

    def logout(self) -> None:
        """
        Drop the held session and any cookies. Makes no network call.
        """
        self._session = None
        if self._client is not None:
            self._client.cookies.clear()

    def _unauthenticated(self, path: str) -> ApiResult:
        logger.debug("Skipping %s, not authenticated", path)
        return ApiResult(outcome=Outcome.NOT_AUTHENTICATED, error="Not authenticated")

    def _checked(self, result: ApiResult) -> ApiResult:
        if result.outcome == Outcome.NOT_AUTHENTICATED:
            # ticket rejected by the server
            self._session = None
        return result

    def get(self, path: str, params: Optional[dict[str, Any]] = None) -> ApiResult:
        """
        Issue an authenticated GET.

        Args:
            path: API path below /api2/json, e.g. "/nodes".
            params: Optional query parameters.

        Returns:
            ApiResult with the response's `data` field.
        """
        if not self.has_valid_ticket():
            return self._unauthenticated(path)
        return self._checked(
            self._call("GET", path, params=params, headers=self._auth_headers())
        )

    def post(self, path: str, data: Optional[dict[str, Any]] = None) -> ApiResult:
        """
        Issue an authenticated POST with the CSRF prevention token.

        Args:
            path: API path below /api2/json.
            data: Optional form body.

        Returns:
            ApiResult with the response's `data` field.
        """
        if not self.has_valid_ticket():
            return self._unauthenticated(path)
        return self._checked(
            self._call("POST", path, data=data, headers=self._auth_headers(csrf=True))
        )

    def close(self) -> None:
        """
        Drop the session and close the HTTP client.
        """
        self.logout()
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "PveClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
