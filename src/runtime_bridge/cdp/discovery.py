"""
Target Discovery

Lists attachable targets from the remote process's HTTP introspection
endpoint and picks the one to attach to.

Selection:
1. page targets whose URL contains the product domain, shortest URL first
   (the main window beats embedded frames and popups)
2. otherwise the first page target
3. otherwise nothing - discovery failed

Transport errors never propagate: an unreachable endpoint is reported as an
empty target list.
"""

import asyncio
import logging
from collections.abc import Iterable

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

# Primary first, legacy fallback second
TARGET_LIST_PATHS = ("/json/list", "/json")

PAGE_TARGET_TYPE = "page"


class Target(BaseModel):
    """Attach candidate exposed by the introspection endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    type: str
    url: str = ""
    title: str = ""
    websocket_url: str | None = Field(None, alias="webSocketDebuggerUrl")

    @property
    def is_page(self) -> bool:
        return self.type == PAGE_TARGET_TYPE

    @property
    def attachable(self) -> bool:
        return bool(self.websocket_url)

    def __str__(self) -> str:
        return f"[{self.type}] {self.title or '(untitled)'} - {self.url}"


def parse_targets(payload: object) -> list[Target]:
    """Build Target models from a decoded /json response, skipping junk entries."""
    if not isinstance(payload, list):
        return []

    targets = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        try:
            targets.append(Target.model_validate(entry))
        except ValidationError as e:
            logger.debug(f"Skipping malformed target entry: {e.error_count()} error(s)")
    return targets


def select_target(targets: Iterable[Target], domain: str) -> Target | None:
    """
    Pick the target to attach to.

    Args:
        targets: Candidates from the introspection endpoint
        domain: Product domain expected in the main window URL

    Returns:
        Selected target, or None when no attachable page target exists
    """
    pages = [t for t in targets if t.is_page and t.attachable]
    if not pages:
        return None

    needle = domain.lower()
    matching = [t for t in pages if needle and needle in t.url.lower()]
    if matching:
        # sorted() is stable: equal-length URLs keep endpoint order
        return sorted(matching, key=lambda t: len(t.url))[0]

    return pages[0]


class TargetDiscovery:
    """
    Queries the introspection endpoint for attach targets.

    Usage:
        discovery = TargetDiscovery(port=9222, domain="clickup.com")
        target = await discovery.discover()
    """

    def __init__(
        self,
        port: int,
        host: str = "localhost",
        domain: str = "",
        http_timeout: float = 5.0,
        paths: tuple[str, ...] = TARGET_LIST_PATHS,
    ):
        self.port = port
        self.host = host
        self.domain = domain
        self.http_timeout = http_timeout
        self.paths = paths

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def fetch_targets(self) -> list[Target]:
        """
        Fetch the target list, trying each known path until one is non-empty.

        Returns:
            Targets from the first path that produced any, else []
        """
        timeout = aiohttp.ClientTimeout(total=self.http_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            for path in self.paths:
                url = f"{self.base_url}{path}"
                try:
                    async with session.get(url) as resp:
                        if resp.status != 200:
                            logger.debug(f"{url} returned HTTP {resp.status}")
                            continue
                        payload = await resp.json(content_type=None)
                except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                    logger.debug(f"Target list unavailable at {url}: {e}")
                    continue

                targets = parse_targets(payload)
                if targets:
                    logger.debug(f"Found {len(targets)} target(s) at {url}")
                    return targets

        return []

    async def discover(self) -> Target | None:
        """Fetch targets and select one. Returns None when nothing is attachable."""
        try:
            targets = await self.fetch_targets()
        except Exception as e:
            logger.error(f"Failed to get CDP targets: {e}", exc_info=True)
            return None

        if not targets:
            logger.warning(f"No CDP targets found on port {self.port}")
            return None

        target = select_target(targets, self.domain)
        if target is None:
            logger.warning(f"No suitable CDP target among {len(targets)} found on port {self.port}")
            return None

        logger.info(f"Selected CDP target: {target.url}")
        return target
