"""JSON-RPC client for the Odoo server."""

import itertools
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Gateway errors mean the server is not reachable right now
_UNREACHABLE_STATUS = {502, 503, 504}


class RemoteError(Exception):
    """Base class for every failure talking to the server."""


class ConnectivityError(RemoteError):
    """The server could not be reached (network down, timeout, gateway)."""


class RemoteOperationError(RemoteError):
    """The server answered but rejected the call or sent garbage."""

    def __init__(self, message: str, name: str = "", data: Optional[dict] = None):
        super().__init__(message)
        self.name = name
        self.data = data or {}


class AuthenticationError(RemoteOperationError):
    """Login failed or the session expired."""


class OdooClient:
    """Thin wrapper around ``/web/dataset/call_kw``.

    Every call gets the selected company injected into its context, and
    the selected company is always part of ``allowed_company_ids``.
    """

    CALL_KW_PATH = "/web/dataset/call_kw"
    AUTH_PATH = "/web/session/authenticate"

    def __init__(self, base_url: str, db: str = "", timeout: float = 30.0,
                 company_id: Optional[int] = None,
                 allowed_company_ids: Optional[list[int]] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.db = db
        self.uid: Optional[int] = None
        self.user_context: dict = {}
        self.company_id = company_id
        self.allowed_company_ids = list(allowed_company_ids or [])
        self._ids = itertools.count(1)
        self.http = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def close(self):
        self.http.close()

    @property
    def is_authenticated(self) -> bool:
        return self.uid is not None

    # ── Transport ───────────────────────────────────────────────

    def _post(self, path: str, params: dict):
        """Send one JSON-RPC request and return its ``result``."""
        body = {
            "jsonrpc": "2.0",
            "method": "call",
            "params": params,
            "id": next(self._ids),
        }
        try:
            response = self.http.post(path, json=body)
        except httpx.TimeoutException as e:
            raise ConnectivityError(f"Request to {path} timed out: {e}") from e
        except httpx.TransportError as e:
            raise ConnectivityError(f"Cannot reach {self.base_url}: {e}") from e

        if response.status_code in _UNREACHABLE_STATUS:
            raise ConnectivityError(
                f"Server unavailable (HTTP {response.status_code})"
            )
        if response.status_code >= 400:
            raise RemoteOperationError(
                f"HTTP {response.status_code} from {path}"
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteOperationError(f"Malformed response from {path}") from e
        if not isinstance(payload, dict):
            raise RemoteOperationError(f"Malformed response from {path}")

        error = payload.get("error")
        if error:
            if not isinstance(error, dict):
                raise RemoteOperationError(str(error))
            data = error.get("data")
            if not isinstance(data, dict):
                data = {}
            name = data.get("name") or ""
            message = data.get("message") or error.get("message") or str(error)
            if "SessionExpired" in name or "AccessDenied" in name:
                raise AuthenticationError(message, name=name, data=data)
            raise RemoteOperationError(message, name=name, data=data)
        if "result" not in payload:
            raise RemoteOperationError(f"Response from {path} has no result")
        return payload["result"]

    # ── Session ─────────────────────────────────────────────────

    def authenticate(self, login: str, password: str) -> int:
        """Open a session and remember the user id and company."""
        result = self._post(self.AUTH_PATH, {
            "db": self.db,
            "login": login,
            "password": password,
        })
        uid = result.get("uid") if isinstance(result, dict) else None
        if not uid:
            raise AuthenticationError("Invalid login or password")
        self.uid = int(uid)
        self.user_context = result.get("user_context") or {}
        if self.company_id is None:
            companies = result.get("user_companies") or {}
            current = companies.get("current_company") if isinstance(companies, dict) else None
            if isinstance(current, (list, tuple)):
                current = current[0] if current else None
            if current is not None:
                self.company_id = int(current)
        logger.info(f"Authenticated as uid {self.uid} on {self.base_url}")
        return self.uid

    def set_company(self, company_id: int,
                    allowed_company_ids: Optional[list[int]] = None):
        self.company_id = company_id
        if allowed_company_ids is not None:
            self.allowed_company_ids = list(allowed_company_ids)

    def _context(self, extra: Optional[dict] = None) -> dict:
        ctx = dict(self.user_context)
        ctx.update(extra or {})
        if self.company_id is not None:
            allowed = list(self.allowed_company_ids)
            if self.company_id not in allowed:
                allowed.append(self.company_id)
            ctx["company_id"] = self.company_id
            ctx["allowed_company_ids"] = list(dict.fromkeys(allowed))
        return ctx

    # ── Calls ───────────────────────────────────────────────────

    def execute(self, model: str, method: str, args: Optional[list] = None,
                kwargs: Optional[dict] = None):
        """Call ``model.method(*args, **kwargs)`` on the server."""
        kwargs = dict(kwargs or {})
        kwargs["context"] = self._context(kwargs.get("context"))
        return self._post(self.CALL_KW_PATH, {
            "model": model,
            "method": method,
            "args": list(args or []),
            "kwargs": kwargs,
        })

    def search_read(self, model: str, domain: Optional[list] = None,
                    fields: Optional[list] = None, limit: Optional[int] = None,
                    offset: int = 0, order: Optional[str] = None) -> list[dict]:
        kwargs = {"fields": list(fields or [])}
        if limit:
            kwargs["limit"] = limit
        if offset:
            kwargs["offset"] = offset
        if order:
            kwargs["order"] = order
        result = self.execute(model, "search_read", [domain or []], kwargs)
        if not isinstance(result, list):
            raise RemoteOperationError(f"search_read on {model} returned {type(result).__name__}")
        return result

    def search_count(self, model: str, domain: Optional[list] = None) -> int:
        result = self.execute(model, "search_count", [domain or []])
        try:
            return int(result)
        except (TypeError, ValueError):
            raise RemoteOperationError(
                f"search_count on {model} returned {result!r}"
            ) from None

    def read(self, model: str, ids: list[int],
             fields: Optional[list] = None) -> list[dict]:
        result = self.execute(model, "read", [list(ids)],
                              {"fields": list(fields or [])})
        return result if isinstance(result, list) else []

    def write(self, model: str, ids: list[int], values: dict):
        return self.execute(model, "write", [list(ids), values])

    def create(self, model: str, values: dict) -> int:
        result = self.execute(model, "create", [values])
        if isinstance(result, list) and result:
            result = result[0]
        try:
            return int(result)
        except (TypeError, ValueError):
            raise RemoteOperationError(
                f"create on {model} returned {result!r}"
            ) from None

    def call(self, remote_call):
        """Run a prepared :class:`~picking_sync.remote.payloads.RemoteCall`."""
        return self.execute(remote_call.model, remote_call.method,
                            remote_call.args, remote_call.kwargs)
