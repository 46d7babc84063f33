import logging
import httpx
from typing import Any, Callable, Optional

from catalog_sync.core.config import settings
from catalog_sync.core.errors import TransportError
from catalog_sync.schemas.record import Record

logger = logging.getLogger(__name__)


class ShopAPIClient:
    """HTTP client for the catalog, cart and orders API."""

    def __init__(
        self,
        base_url: str = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.CATALOG_API_BASE_URL).rstrip("/")
        self.token_provider = token_provider
        self.transport = transport
        self.client = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=settings.REQUEST_TIMEOUT_SECONDS,
                transport=self.transport,
            )
        return self.client

    def _headers(self) -> dict:
        token = self.token_provider() if self.token_provider else None
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, path: str, action: str, **kwargs) -> Any:
        url = f"{self.base_url}/{path}"
        try:
            client = await self._get_client()
            logger.info(f"{action}: {method} {url}")
            response = await client.request(method, url, headers=self._headers(), **kwargs)
            response.raise_for_status()
            if not response.content:
                return None
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"{action} failed with status {e.response.status_code}: {e.response.text}")
            raise TransportError(
                f"{action} failed: {e.response.status_code}",
                status_code=e.response.status_code,
                body=_error_body(e.response),
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"{action} failed: {str(e)}")
            raise TransportError(f"{action} failed: {str(e)}") from e
        except ValueError as e:
            # 2xx with a body that is not JSON
            logger.error(f"{action} returned an undecodable body: {str(e)}")
            raise TransportError(f"{action} returned an undecodable body") from e

    # Records

    async def get_records(self) -> Any:
        return await self._request("GET", "records", "Get records")

    async def get_record(self, record_id: int) -> Any:
        return await self._request("GET", f"records/{record_id}", f"Get record {record_id}")

    async def create_record(self, record: Record) -> Any:
        """
        POST records as multipart form data.

        Fields: TitleRecord, Price, Stock, Discontinued, YearOfPublication,
        GroupId and an optional Photo file.
        """
        return await self._request(
            "POST",
            "records",
            "Create record",
            files=_record_multipart(record),
        )

    async def update_record(self, record: Record) -> Any:
        parts = {"IdRecord": (None, str(record.id))}
        parts.update(_record_multipart(record))
        return await self._request(
            "PUT",
            f"records/{record.id}",
            f"Update record {record.id}",
            files=parts,
        )

    async def delete_record(self, record_id: int) -> Any:
        return await self._request("DELETE", f"records/{record_id}", f"Delete record {record_id}")

    async def update_stock(self, record_id: int, amount: int) -> Any:
        return await self._request(
            "PUT",
            f"records/{record_id}/updateStock/{amount}",
            f"Update stock of record {record_id} by {amount:+d}",
            json={},
        )

    # Groups

    async def get_groups(self) -> Any:
        return await self._request("GET", "groups", "Get groups")

    async def get_group(self, group_id: int) -> Any:
        return await self._request("GET", f"groups/{group_id}", f"Get group {group_id}")

    async def get_records_by_group(self, group_id: int) -> Any:
        return await self._request(
            "GET", f"groups/recordsByGroup/{group_id}", f"Get records of group {group_id}"
        )

    # Cart

    async def add_to_cart(self, email: str, record_id: int, amount: int = 1) -> Any:
        return await self._request(
            "POST",
            f"carts/addToCart/{email}",
            f"Add record {record_id} to cart of {email}",
            json={"idRecord": record_id, "amount": amount},
        )

    async def remove_from_cart(self, email: str, record_id: int, amount: int = 1) -> Any:
        return await self._request(
            "POST",
            f"carts/removeFromCart/{email}",
            f"Remove record {record_id} from cart of {email}",
            json={"idRecord": record_id, "amount": amount},
        )

    async def get_cart(self, email: str) -> Any:
        return await self._request("GET", f"carts/{email}", f"Get cart of {email}")

    # Orders

    async def get_orders(self, email: str) -> Any:
        return await self._request(
            "GET", "orders", f"Get orders of {email}", params={"userEmail": email}
        )

    async def close(self):
        """Close HTTP client."""
        if self.client:
            await self.client.aclose()
            self.client = None


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _record_multipart(record: Record) -> dict:
    # (None, value) parts are plain form fields, so the body is always multipart
    fields = {
        "TitleRecord": record.title or "",
        "Price": str(record.price or 0),
        "Stock": str(record.stock or 0),
        "Discontinued": "true" if record.discontinued else "false",
        "YearOfPublication": str(record.year) if record.year is not None else "",
        "GroupId": str(record.group_id) if record.group_id is not None else "",
    }
    parts = {name: (None, value) for name, value in fields.items()}
    if record.photo:
        parts["Photo"] = (record.photo_name or "photo.jpg", bytes(record.photo))
    return parts
