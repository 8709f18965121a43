"""
Content Updaters
Concrete external update calls the executor can be wired with
"""
import logging
from typing import Dict, Optional

import requests

from ..errors import AccessDeniedError

logger = logging.getLogger(__name__)


class HttpContentUpdater:
    """
    Applies a parameter mapping by PATCHing it as JSON to ``{scheme}://{authority}``.

    The target answers with the number of entries it changed, either as
    ``{"updated": n}`` or as a bare integer.
    """

    def __init__(self, scheme: str = "http", timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.scheme = scheme
        self.timeout = timeout
        self.session = session or requests.Session()

    def url_for(self, authority: str) -> str:
        return f"{self.scheme}://{authority}"

    def update(self, authority: str, values: Dict[str, str]) -> int:
        if not authority:
            raise ValueError("No authority configured")

        url = self.url_for(authority)
        logger.debug(f"PATCH {url} with {len(values)} value(s)")
        response = self.session.patch(url, json=values, timeout=self.timeout)

        if response.status_code in (401, 403):
            raise AccessDeniedError(f"{url} rejected the update ({response.status_code})")
        response.raise_for_status()

        body = response.json()
        if isinstance(body, dict):
            body = body.get("updated", 0)
        return int(body)

    def close(self):
        self.session.close()
