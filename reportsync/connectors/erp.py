"""ERP open API connector"""

import time
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from reportsync.core.base_connector import BaseConnector
from reportsync.core.exceptions import RateLimitError, UpstreamError, ValidationError
from reportsync.utils.retry import retry_on_exception


class ErpConnector(BaseConnector):
    """
    ERP open API connector.
    Sends authenticated requests and checks the response envelope code.
    Retries transport failures only; upstream error codes are raised to the caller.

    Credentials go out as app_key, access_token and timestamp. Request signing
    (MD5 sign over the sorted parameters, AES-encrypted) and access token refresh
    are not built in: tokens are refreshed outside this service and stored on the
    account row. A gateway that requires a sign can pass `signer`, which gets the
    account, the query parameters and the payload and returns parameters to add.
    """

    DEFAULT_SUCCESS_CODES = (0, 200, "200")
    RATE_LIMIT_CODES = {"3001008"}

    SELLER_LIST_PATH = "/erp/sc/data/seller/lists"

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        signer: Optional[Callable[[Any, Dict[str, str], Dict[str, Any]], Dict[str, str]]] = None,
    ):
        """
        Initialize ERP connector

        Args:
            base_url: ERP open API root URL
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (used by tests)
            signer: Optional hook returning extra query parameters, e.g. a sign
        """
        super().__init__(base_url, "erp")
        self.timeout = timeout
        self.transport = transport
        self.signer = signer

    def post(
        self,
        account,
        path: str,
        body: Dict[str, Any],
        success_codes: Optional[Iterable[Any]] = None,
    ) -> Dict[str, Any]:
        """POST business parameters as JSON body, credentials as query string"""
        return self._request("POST", account, path, body, success_codes)

    def get(
        self,
        account,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        success_codes: Optional[Iterable[Any]] = None,
    ) -> Dict[str, Any]:
        """GET with business parameters merged into the query string"""
        return self._request("GET", account, path, params or {}, success_codes)

    @retry_on_exception(exception_types=(httpx.TransportError,), max_retries=3, delay_seconds=2, backoff_factor=2.0)
    def _request(
        self,
        method: str,
        account,
        path: str,
        payload: Dict[str, Any],
        success_codes: Optional[Iterable[Any]],
    ) -> Dict[str, Any]:
        if not path.startswith("/"):
            raise ValidationError(f"Endpoint path must start with '/': {path}")

        url = f"{self.base_url}{path}"
        params = self._auth_params(account)
        if self.signer is not None:
            params.update(self.signer(account, dict(params), payload))

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            if method == "GET":
                r = client.get(url, params={**params, **payload})
            else:
                r = client.post(url, params=params, json=payload)

        if r.status_code == 429:
            raise RateLimitError(f"{path}: HTTP 429 Too Many Requests", code=429, path=path)
        if r.status_code >= 400:
            preview = (r.text or "")[:300]
            raise UpstreamError(f"{path}: HTTP {r.status_code}: {preview}", code=r.status_code, path=path)

        try:
            envelope = r.json()
        except ValueError:
            preview = (r.text or "")[:300]
            raise UpstreamError(f"{path}: response is not JSON. text preview: {preview}", path=path)

        if not isinstance(envelope, dict):
            raise UpstreamError(f"{path}: unexpected response type {type(envelope).__name__}", path=path)

        code = envelope.get("code")
        if not self.is_success(code, success_codes):
            message = envelope.get("message") or envelope.get("msg") or "request failed"
            if str(code) in self.RATE_LIMIT_CODES:
                raise RateLimitError(f"{path}: [{code}] {message}", code=code, path=path)
            raise UpstreamError(f"{path}: [{code}] {message}", code=code, path=path)

        return envelope

    @classmethod
    def is_success(cls, code: Any, success_codes: Optional[Iterable[Any]] = None) -> bool:
        """A missing code is success; otherwise it must be in the endpoint family's set"""
        if code is None:
            return True
        accepted = list(success_codes) if success_codes is not None else list(cls.DEFAULT_SUCCESS_CODES)
        if code in accepted:
            return True
        return code == 0 or code == "0"

    @staticmethod
    def extract_records(envelope: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Pull the record list out of the envelope shapes the API uses"""
        data = envelope.get("data")
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for field in ("records", "list", "rows", "data"):
                value = data.get(field)
                if isinstance(value, list):
                    return value
        return []

    @staticmethod
    def extract_total(envelope: Dict[str, Any]) -> Optional[int]:
        """Upstream-reported total, from the data block or the envelope; None when absent"""
        data = envelope.get("data")
        candidates = []
        if isinstance(data, dict):
            candidates.append(data.get("total"))
        candidates.append(envelope.get("total"))
        for value in candidates:
            if value is None or value == "":
                continue
            try:
                return int(value)
            except (TypeError, ValueError):
                continue
        return None

    def validate_connection(self, account) -> bool:
        """
        Validate credentials by listing the account's stores

        Returns:
            True if connection is valid, False otherwise
        """
        try:
            self.log_info(f"Validating connection for account {account.id}...")
            self.get(account, self.SELLER_LIST_PATH)
            self.log_info("Connection validated successfully")
            return True
        except Exception as e:
            self.log_error(f"Connection validation failed: {e}", exc_info=True)
            return False

    @staticmethod
    def _auth_params(account) -> Dict[str, str]:
        if not getattr(account, "app_id", None):
            raise ValidationError(f"Account {getattr(account, 'id', '?')} has no app_id")
        return {
            "app_key": account.app_id,
            "access_token": account.access_token or "",
            "timestamp": str(int(time.time())),
        }
