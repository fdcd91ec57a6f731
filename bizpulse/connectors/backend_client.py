"""
Hosted backend client

Thin aiohttp wrapper over the backend's PostgREST-style surface:
  - POST /rest/v1/rpc/{name}   named server-side procedures (aggregates, mutations)
  - GET  /rest/v1/{table}      filtered table reads

Every call opens its own session; the backend owns tenancy, row-level
security and atomicity, so a call is "send request, await one response".
"""
from typing import Any, Dict, Optional
import asyncio
import json
import aiohttp

from bizpulse.config import get_settings
from bizpulse.utils.logger import log

settings = get_settings()


class BackendError(Exception):
    """Base class for failures talking to the hosted backend"""


class RPCError(BackendError):
    """The backend answered with an error payload"""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.details = details
        self.hint = hint

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "status": self.status,
            "code": self.code,
            "details": self.details,
            "hint": self.hint,
        }


class DecodeError(BackendError):
    """A response did not match the schema expected for that call"""

    def __init__(self, call: str, message: str):
        super().__init__(f"{call}: {message}")
        self.call = call


class BackendClient:
    """Client for the hosted backend's RPC and table endpoints"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        schema: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.backend_api_key
        self.access_token = access_token or settings.backend_access_token
        self.schema = schema or settings.backend_schema
        self.timeout = aiohttp.ClientTimeout(
            total=timeout_seconds or settings.request_timeout_seconds
        )

    @property
    def headers(self) -> Dict[str, str]:
        bearer = self.access_token or self.api_key
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {bearer}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Accept-Profile": self.schema,
            "Content-Profile": self.schema,
        }

    async def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Call a named server-side procedure.

        Args:
            name: Procedure name (e.g. 'crm_get_business_pulse')
            params: Named arguments, sent as the JSON body

        Returns:
            Decoded JSON body (None for empty responses)

        Raises:
            RPCError: non-2xx response
            aiohttp.ClientError / asyncio.TimeoutError: transport failure
        """
        url = f"{self.base_url}/rest/v1/rpc/{name}"
        log.debug(f"RPC {name} params={params}")

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(url, headers=self.headers, json=params or {}) as response:
                return await self._read(response, name)

    async def select(self, table: str, filters: Optional[Dict[str, str]] = None) -> Any:
        """
        Read rows from a table endpoint.

        Args:
            table: Table name (e.g. 'crm_meetings')
            filters: PostgREST query params, e.g. {"created_by": "eq.<id>", "order": "start_time.asc"}
        """
        url = f"{self.base_url}/rest/v1/{table}"
        params = {"select": "*"}
        params.update(filters or {})

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(url, headers=self.headers, params=params) as response:
                return await self._read(response, table)

    async def _read(self, response: aiohttp.ClientResponse, call: str) -> Any:
        body = await response.text()

        if response.status >= 400:
            error = self._parse_error(body, response.status)
            log.error(f"Backend call {call} failed ({response.status}): {error.message}")
            raise error

        if not body:
            return None

        try:
            return json.loads(body)
        except ValueError as e:
            raise DecodeError(call, f"response is not JSON: {e}") from e

    @staticmethod
    def _parse_error(body: str, status: int) -> RPCError:
        try:
            payload = json.loads(body) if body else {}
        except ValueError:
            payload = {}

        if not isinstance(payload, dict):
            payload = {}

        return RPCError(
            message=payload.get("message") or body or f"HTTP {status}",
            status=status,
            code=payload.get("code"),
            details=payload.get("details"),
            hint=payload.get("hint"),
        )


# Transport failures the orchestrator treats like any other per-call failure
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)
