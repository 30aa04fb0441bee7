"""Shared HTTP plumbing for exchange adapters.

Adapters compose an HttpTransport rather than inheriting from a base class.
The transport owns the requests session, timeouts, retry and rate-limit
backoff, and turns every failure into either ExchangeNetworkError
(transient) or TradingApiError (fatal) based on exception type and HTTP
status code.
"""
import base64
import hashlib
import hmac
import json
import random
import time
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import urlencode

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import NetworkConfig
from .errors import ExchangeNetworkError, TradingApiError
from .logging_setup import logger

RATE_LIMIT_STATUS = 429
RATE_LIMIT_RESET_HEADERS = ("X-RateLimit-Reset", "CB-RateLimit-Reset", "Retry-After")


def hmac_signature(
    secret: str,
    message: str,
    digest: str = "sha256",
    *,
    secret_is_base64: bool = False,
    output: str = "hex",
) -> str:
    """Sign message with an HMAC of the given digest.

    Args:
        secret: API secret
        message: Payload to sign
        digest: hashlib digest name (sha256, sha384, sha512)
        secret_is_base64: Decode secret from base64 before use
        output: "hex" or "base64"
    """
    if secret_is_base64:
        try:
            key = base64.b64decode(secret)
        except (ValueError, TypeError):
            raise TradingApiError("Secret must be base64-encoded for signing")
    else:
        key = secret.encode("utf-8")
    mac = hmac.new(key, message.encode("utf-8"), getattr(hashlib, digest))
    if output == "base64":
        return base64.b64encode(mac.digest()).decode()
    return mac.hexdigest()


def build_query(params: Optional[Mapping[str, Any]]) -> str:
    """URL-encode params in insertion order, skipping None values."""
    if not params:
        return ""
    return urlencode([(k, v) for k, v in params.items() if v is not None])


class HttpTransport:
    """requests-based transport with error classification.

    Features:
    - Connect/read timeout from NetworkConfig.connection_timeout.
    - urllib3 Retry for idempotent methods on gateway errors.
    - Jittered exponential backoff on 429, honouring a reset header if sent.
    - Connection errors, timeouts and configured non-fatal status codes raise
      ExchangeNetworkError; everything else raises TradingApiError.
    """

    def __init__(
        self,
        base_url: str,
        network_config: Optional[NetworkConfig] = None,
        *,
        max_retries: int = 3,
        max_rate_limit_attempts: int = 5,
        max_backoff_seconds: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        network_config = network_config or NetworkConfig()
        self.base_url = base_url.rstrip("/")
        self.timeout = network_config.connection_timeout
        self.non_fatal_error_codes = frozenset(network_config.non_fatal_error_codes)
        self.max_rate_limit_attempts = max_rate_limit_attempts
        self.max_backoff_seconds = max_backoff_seconds

        self.session = session or requests.Session()
        retries = Retry(
            total=max_retries,
            backoff_factor=0.5,
            status_forcelist=(500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "DELETE"]),
            raise_on_status=False,
        )
        self.session.mount("https://", HTTPAdapter(max_retries=retries))
        self.session.mount("http://", HTTPAdapter(max_retries=retries))

    @staticmethod
    def _jittered_backoff(attempt: int, base: float = 1.0, max_backoff: float = 60.0) -> float:
        """Compute jittered exponential backoff in seconds."""
        delay = min(base * (2 ** attempt), max_backoff)
        # ±25% jitter
        jitter = delay * 0.25 * (2 * random.random() - 1)
        return max(0, delay + jitter)

    @staticmethod
    def _get_rate_limit_reset(resp: requests.Response) -> Optional[float]:
        """Seconds to wait before retrying, from the first reset header present.

        Headers carrying a Unix timestamp are converted to a relative delay.
        """
        for header in RATE_LIMIT_RESET_HEADERS:
            if header in resp.headers:
                try:
                    value = float(resp.headers[header])
                except (ValueError, TypeError):
                    return None
                if value > 1e9:
                    return max(0.0, value - time.time())
                return value
        return None

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Optional[Any] = None,
        headers: Optional[Mapping[str, str]] = None,
        form_encoded: bool = False,
    ) -> Any:
        """Send a request and return the decoded JSON body (or None if empty).

        Raises:
            ExchangeNetworkError: transient failure
            TradingApiError: any other failure
        """
        request_path = path if path.startswith("/") else f"/{path}"
        url = f"{self.base_url}{request_path}"
        if body is None:
            data = None
        elif form_encoded:
            data = build_query(body)
        else:
            data = json.dumps(body)

        attempt = 0
        while True:
            logger.debug(f"HTTP {method} {url} params={params}")
            try:
                resp = self.session.request(
                    method,
                    url,
                    params=params,
                    data=data,
                    headers=dict(headers or {}),
                    timeout=self.timeout,
                )
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                raise ExchangeNetworkError(f"{method} {url} failed: {e}") from e
            except requests.exceptions.RequestException as e:
                raise TradingApiError(f"{method} {url} failed: {e}") from e

            if resp.status_code != RATE_LIMIT_STATUS:
                break

            if attempt >= self.max_rate_limit_attempts:
                raise ExchangeNetworkError(
                    f"Rate limited on {method} {url} and max backoff attempts exceeded",
                    status_code=resp.status_code,
                )
            delay = self._get_rate_limit_reset(resp)
            if delay is None:
                delay = self._jittered_backoff(
                    attempt, base=1.0, max_backoff=self.max_backoff_seconds
                )
            logger.warning(f"Rate limited on {method} {url}; retrying in {delay:.2f}s")
            time.sleep(min(delay, self.max_backoff_seconds))
            attempt += 1

        return self._handle_response(method, url, resp)

    def _handle_response(self, method: str, url: str, resp: requests.Response) -> Any:
        if resp.status_code in self.non_fatal_error_codes:
            raise ExchangeNetworkError(
                f"{method} {url} returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )
        if not resp.ok:
            raise TradingApiError(
                f"{method} {url} returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )
        if not resp.text:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise TradingApiError(f"Malformed JSON from {method} {url}: {resp.text[:200]}") from e

    def get(self, path: str, **kwargs) -> Any:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> Any:
        return self.request("POST", path, **kwargs)

    def delete(self, path: str, **kwargs) -> Any:
        return self.request("DELETE", path, **kwargs)

    def close(self) -> None:
        self.session.close()


def require_fields(payload: Any, fields: Iterable[str], context: str) -> Mapping[str, Any]:
    """Check an exchange JSON object has the given keys.

    Raises:
        TradingApiError: if payload is not a mapping or a key is missing
    """
    if not isinstance(payload, Mapping):
        raise TradingApiError(f"Unexpected response for {context}: {payload!r}")
    missing = [f for f in fields if f not in payload]
    if missing:
        raise TradingApiError(f"Response for {context} missing fields {missing}: {payload!r}")
    return payload
