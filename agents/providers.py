"""
HTTP provider base shared by the source adapters.

Every outbound call goes through one requests.Session with the configured
User-Agent and a hard per-call timeout. There is no retry loop: a failed
provider degrades to "no data" for this aggregation and the next scheduled
refresh tries again.
"""

import logging
import re
import time
from typing import Any, Callable, Optional

import requests
from bs4 import BeautifulSoup

from agents.errors import AdapterUnavailable, ProviderFailure
from config.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class BaseProvider:
    name = "provider"

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or default_settings
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": self.settings.USER_AGENT})

    def _require(self, value: Optional[str], what: str) -> str:
        if not value:
            raise AdapterUnavailable(f"{self.name}: {what} not configured")
        return value

    def _request(self, method: str, url: str, deadline: Optional["Deadline"] = None,
                 **kwargs) -> requests.Response:
        timeout = self.settings.REQUEST_TIMEOUT
        if deadline is not None:
            if deadline.expired:
                raise ProviderFailure(f"{self.name}: time budget spent before {method} {url}")
            timeout = min(timeout, deadline.remaining())
        kwargs.setdefault("timeout", timeout)
        try:
            resp = self.session.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp
        except requests.RequestException as e:
            raise ProviderFailure(f"{self.name}: {method} {url} failed: {e}") from e

    def _json(self, resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderFailure(f"{self.name}: malformed JSON from {resp.url}") from e

    def _get(self, url: str, **kwargs) -> Any:
        """GET and decode JSON, raising ProviderFailure on any transport problem."""
        return self._json(self._request("GET", url, **kwargs))

    def _post(self, url: str, **kwargs) -> Any:
        return self._json(self._request("POST", url, **kwargs))


def strip_html(text: Optional[str]) -> str:
    """Drop markup and collapse whitespace; provider text often carries HTML."""
    if not text:
        return ""
    if "<" in text and ">" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    return re.sub(r"\s+", " ", text).strip()


# ─── Time Budgets ───────────────────────────────────────────────────────────

# Share of ADAPTER_TIMEOUT an adapter may spend waiting on its providers,
# leaving room to assemble a result before the orchestrator gives up on it.
PROVIDER_BUDGET_SHARE = 0.8


def provider_budget(settings: Settings) -> float:
    return min(settings.PROVIDER_WAIT_SECONDS, settings.ADAPTER_TIMEOUT * PROVIDER_BUDGET_SHARE)


class Deadline:
    """Wall-clock budget shared by a chain of provider calls."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0
