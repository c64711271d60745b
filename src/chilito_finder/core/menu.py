"""
Menu Verification Module
------------------------

Decides whether a store currently offers the Chili Cheese Burrito.

Verification order for one store number:

    1. The override table. Stores marked positive there are FOUND without any request;
       the table compensates for known misses of the scraping heuristics and is treated
       as ground truth.
    2. Each candidate menu page in turn (menu, burritos, specialties, ...). A page is
       fetched up to `RetryPolicy.attempts` times with exponential backoff plus jitter,
       each attempt presenting a randomly chosen browser identity. Transport errors and
       non-200 answers count as failed attempts; a page whose attempts are exhausted is
       skipped, never fatal.
    3. Detection heuristics on every fetched page, first hit wins:
         a. whole-document case-insensitive keyword match
         b. keyword match on the normalized text of product-name elements
         c. a line-bounded regex allowing "chili ... burrito" and "burrito ... chili"

Result:
    FOUND         - the override table or any heuristic matched
    NOT_FOUND     - at least one page was fetched and nothing matched
    INCONCLUSIVE  - no page could be fetched at all
"""

import json
import random
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from bs4 import BeautifulSoup

from ..config import (
    DEFAULT_OVERRIDES,
    DEFAULT_OVERRIDES_VERSION,
    MENU_KEYWORDS,
    MENU_TIMEOUT,
    MENU_URL_TEMPLATES,
    RETRY_ATTEMPTS,
    RETRY_BASE_DELAY,
    RETRY_JITTER,
    URL_DELAY,
)
from ..utils.cancel import CancelToken
from ..utils.http import HTML_HEADERS, HttpClient, get_default_http_client
from ..utils.logger import logger
from .errors import RECOVERABLE_ERRORS
from .models import VerificationResult

PRODUCT_NAME_SELECTOR = ".product-name, .product-title, .menu-item, .food-item-name"
TRANSPOSED_NAME = re.compile(r"chil(?:i|ito)[^\n]*burrito|burrito[^\n]*chil(?:i|ito)", re.IGNORECASE)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/14.1.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:89.0) Gecko/20100101 Firefox/89.0",
)


@dataclass
class RetryPolicy:
    """Attempt budget and backoff schedule for one menu page.

    The wait after failed attempt `n` (0-based) is `base_delay * factor**n` plus a
    uniform random jitter in [0, jitter].
    """
    attempts: int = RETRY_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY
    factor: float = 2.0
    jitter: float = RETRY_JITTER
    rng: random.Random = field(default_factory=random.Random)

    def backoff(self, attempt: int) -> float:
        extra = self.rng.uniform(0, self.jitter) if self.jitter > 0 else 0.0
        return self.base_delay * (self.factor ** attempt) + extra


class IdentityRotator:
    """Hands out browser-like request headers with a randomly chosen User-Agent."""

    def __init__(self, user_agents: Sequence[str] = USER_AGENTS, rng: Optional[random.Random] = None):
        if not user_agents:
            raise ValueError("at least one user agent is required")
        self.user_agents = tuple(user_agents)
        self.rng = rng or random.Random()

    def next_headers(self) -> dict:
        return dict(
            HTML_HEADERS,
            **{
                "User-Agent": self.rng.choice(self.user_agents),
                "Connection": "keep-alive",
                "Upgrade-Insecure-Requests": "1",
                "Cache-Control": "max-age=0",
            }
        )


class OverrideTable:
    """Read-only, versioned mapping of store number -> known availability."""

    def __init__(self, entries: Optional[Mapping[str, bool]] = None, version: str = "unversioned"):
        self.version = version
        self.entries = MappingProxyType(dict(entries or {}))

    def is_known_positive(self, store_id: str) -> bool:
        return self.entries.get(store_id) is True

    def __contains__(self, store_id) -> bool:
        return store_id in self.entries

    def __len__(self) -> int:
        return len(self.entries)


def default_override_table() -> OverrideTable:
    return OverrideTable(DEFAULT_OVERRIDES, version=DEFAULT_OVERRIDES_VERSION)


def load_override_table(path: Union[str, Path]) -> OverrideTable:
    """
    Load an override table from JSON shaped like
    `{"version": "2024.2", "stores": {"018678": true}}`.

    Raises:
        FileNotFoundError: If `path` does not exist.
        ValueError: If the file is not valid JSON or `stores` is not an object of booleans.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object")
    stores = data.get("stores")
    if not isinstance(stores, dict) or not all(isinstance(v, bool) for v in stores.values()):
        raise ValueError(f"{path}: 'stores' must map store numbers to true/false")
    return OverrideTable(
        {str(k): v for k, v in stores.items()},
        version=str(data.get("version", "unversioned"))
    )


# -------------------------------------------------- Detection heuristics ---------------------------------------------------

def match_document(html: str, soup: BeautifulSoup, keywords: Iterable[str]) -> Optional[str]:
    lowered = html.lower()
    for term in keywords:
        if term in lowered:
            return term
    return None


def match_product_names(html: str, soup: BeautifulSoup, keywords: Iterable[str]) -> Optional[str]:
    for element in soup.select(PRODUCT_NAME_SELECTOR):
        text = " ".join(element.get_text(" ").lower().split())
        for term in keywords:
            if term in text:
                return term
    return None


def match_transposed_name(html: str, soup: BeautifulSoup, keywords: Iterable[str]) -> Optional[str]:
    match = TRANSPOSED_NAME.search(html)
    return match.group(0) if match else None


DEFAULT_HEURISTICS = (
    ("document", match_document),
    ("product_name", match_product_names),
    ("pattern", match_transposed_name),
)


class ContentVerifier:
    def __init__(
            self,
            http: Optional[HttpClient] = None,
            overrides: Optional[OverrideTable] = None,
            retry_policy: Optional[RetryPolicy] = None,
            identities: Optional[IdentityRotator] = None,
            url_templates: Sequence[str] = MENU_URL_TEMPLATES,
            keywords: Sequence[str] = MENU_KEYWORDS,
            heuristics: Sequence = DEFAULT_HEURISTICS,
            url_delay: float = URL_DELAY,
            timeout: float = MENU_TIMEOUT,
            ):
        self.http = http or get_default_http_client()
        self.overrides = overrides if overrides is not None else default_override_table()
        self.retry_policy = retry_policy or RetryPolicy()
        self.identities = identities or IdentityRotator()
        self.url_templates = tuple(url_templates)
        self.keywords = tuple(k.lower() for k in keywords)
        self.heuristics = tuple(heuristics)
        self.url_delay = url_delay
        self.timeout = timeout

    def menu_urls(self, store_id: str) -> List[str]:
        return [template.format(store_id=store_id) for template in self.url_templates]

    def verify(
            self,
            store_id: str,
            cancel: Optional[CancelToken] = None,
            search_id: Optional[str] = None
            ) -> VerificationResult:
        cancel = cancel or CancelToken()
        search_id = search_id or str(uuid.uuid4())[:8]

        if self.overrides.is_known_positive(store_id):
            logger.info("Store is in the override table of known Chilito locations", extra={
                "operation": "verify_menu",
                "search_id": search_id,
                "store_id": store_id,
                "overrides_version": self.overrides.version,
                "result": VerificationResult.FOUND.value
            })
            return VerificationResult.FOUND

        if store_id in self.overrides:
            logger.debug("Override table marks store negative, checking menu pages anyway", extra={
                "operation": "verify_menu",
                "search_id": search_id,
                "store_id": store_id,
                "overrides_version": self.overrides.version
            })

        fetched_any = False
        for index, url in enumerate(self.menu_urls(store_id)):
            if index > 0:
                cancel.sleep(self.url_delay)

            html = self._fetch_with_retries(url, cancel, search_id)
            if html is None:
                continue
            fetched_any = True

            hit = self._detect(html)
            if hit is not None:
                heuristic, term = hit
                logger.info(f"Found '{term}' in menu", extra={
                    "operation": "verify_menu",
                    "search_id": search_id,
                    "store_id": store_id,
                    "url": url,
                    "heuristic": heuristic,
                    "result": VerificationResult.FOUND.value
                })
                return VerificationResult.FOUND

        result = VerificationResult.NOT_FOUND if fetched_any else VerificationResult.INCONCLUSIVE
        logger.info("Menu verification finished without a match", extra={
            "operation": "verify_menu",
            "search_id": search_id,
            "store_id": store_id,
            "result": result.value
        })
        return result

    def _fetch_with_retries(self, url: str, cancel: CancelToken, search_id: str) -> Optional[str]:
        policy = self.retry_policy
        for attempt in range(policy.attempts):
            if attempt > 0:
                cancel.sleep(policy.backoff(attempt - 1))
            try:
                response = self.http.get(
                    url,
                    headers=self.identities.next_headers(),
                    timeout=self.timeout,
                    cancel=cancel
                )
            except RECOVERABLE_ERRORS as e:
                logger.warning(f"Error accessing menu page: {e}", extra={
                    "operation": "fetch_menu",
                    "search_id": search_id,
                    "url": url,
                    "attempt": attempt + 1,
                    "error": str(e)
                })
                continue

            if response.status_code == 200:
                return response.text

            logger.warning(f"Received status code {response.status_code}", extra={
                "operation": "fetch_menu",
                "search_id": search_id,
                "url": url,
                "attempt": attempt + 1,
                "status_code": response.status_code
            })

        logger.warning("Failed to access menu page after multiple attempts", extra={
            "operation": "fetch_menu",
            "search_id": search_id,
            "url": url,
            "attempts": policy.attempts
        })
        return None

    def _detect(self, html: str):
        soup = BeautifulSoup(html, "html.parser")
        for name, heuristic in self.heuristics:
            term = heuristic(html, soup, self.keywords)
            if term:
                return name, term
        return None
