"""Download of FHIR profiles and reference resources."""

from typing import Optional

import httpx

from fhir_orchestration.utils.logging import get_logger

logger = get_logger(__name__)


class ResourceFetcher:
    """Blocking HTTP GET of conformance resources.

    Failures never raise: a transport error or a non-200 response is logged
    and reported as empty text, which callers treat as "nothing to add".
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the fetcher.

        Args:
            timeout: Request timeout in seconds, None disables it
            transport: Optional transport, used to stub the network in tests
        """
        self.timeout = timeout
        self._transport = transport

    def fetch(self, url: str) -> str:
        """Fetch a document and return its body text."""
        try:
            with httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                follow_redirects=True,
                headers={"Accept": "application/fhir+json, application/json"},
            ) as client:
                response = client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("resource_fetch_failed", url=url, error=str(e))
            return ""

        if response.status_code != 200:
            logger.warning(
                "resource_fetch_unexpected_status",
                url=url,
                status_code=response.status_code,
            )
            return ""

        return response.text
