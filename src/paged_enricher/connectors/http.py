"""HTTP collaborators built on a shared httpx.AsyncClient."""

from typing import Any, Dict, List, Optional
import httpx

from ..config import settings
from ..logging_config import get_logger
from ..utils.typing import Batch, Record

logger = get_logger(__name__)


def make_client() -> httpx.AsyncClient:
    """Create an AsyncClient with the configured timeout and pool limits."""
    return httpx.AsyncClient(
        timeout=settings.http_timeout,
        limits=httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100
        ),
    )


class HttpConnector:
    """Base class owning (or borrowing) an async HTTP client."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client
        self._owns_client = client is None

    async def __aenter__(self):
        """Async context manager entry."""
        if self.client is None:
            self.client = make_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    def _require_client(self) -> httpx.AsyncClient:
        if self.client is None:
            raise RuntimeError(f"{type(self).__name__} must be used as an async context manager")
        return self.client


class HttpSource(HttpConnector):
    """
    Page through a JSON list endpoint using ``limit``/``offset`` query params.

    The response may be a bare list or an object holding the list under
    ``items_key``. Each item must carry ``id_field``.
    """

    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        items_key: Optional[str] = None,
        id_field: str = "id",
    ):
        super().__init__(client)
        self.url = url
        self.items_key = items_key
        self.id_field = id_field

    async def fetch(self, limit: int, offset: int) -> List[Record]:
        response = await self._require_client().get(
            self.url, params={"limit": limit, "offset": offset}
        )
        response.raise_for_status()
        payload = response.json()
        items = payload[self.items_key] if self.items_key else payload
        return [Record(id=item[self.id_field], data=item) for item in items]


class HttpEnricher(HttpConnector):
    """GET a per-record URL built from a template such as ``https://api/x/{id}/orders``."""

    def __init__(self, url_template: str, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client)
        self.url_template = url_template

    def url_for(self, record: Record) -> str:
        return self.url_template.format(**{**record.data, "id": record.id})

    def cache_key(self, record: Record) -> str:
        """Identify a lookup by the URL it requests."""
        url = httpx.URL(self.url_for(record))
        if self.client is not None and not url.is_absolute_url:
            url = self.client.base_url.join(url)
        return f"GET {url}"

    async def enrich(self, record: Record) -> Any:
        url = self.url_for(record)
        response = await self._require_client().get(url)
        response.raise_for_status()
        return response.json()


class HttpSink(HttpConnector):
    """POST each batch as a JSON array of flattened rows."""

    def __init__(self, url: str, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client)
        self.url = url

    async def deliver(self, batch: Batch) -> Dict[str, Any]:
        rows = [record.to_dict() for record in batch]
        response = await self._require_client().post(self.url, json=rows)
        response.raise_for_status()
        logger.debug(f"Posted {len(rows)} rows to {self.url}")
        return {"status": response.status_code, "count": len(rows)}
