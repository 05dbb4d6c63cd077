from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from app.core.enums import PlatformName, SyncStatus
from app.core.exceptions import AuthExpiredError


@dataclass
class PlatformLevel:
    """Stock level of one product (or variant) as reported by a platform."""
    available: int
    active: bool
    reserved: int = 0
    incoming: int = 0
    variant_ref: Optional[str] = None
    location_ref: Optional[str] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None


@dataclass
class ProductInfo:
    """One sellable item returned by `PlatformAdapter.list_products`."""
    product_ref: str
    title: str
    variant_ref: Optional[str] = None
    sku: Optional[str] = None
    active: bool = True
    available: Optional[int] = None
    reserved: int = 0
    incoming: int = 0
    location_ref: Optional[str] = None
    platform_data: Dict[str, Any] = field(default_factory=dict)


TokenRefresher = Callable[[], Awaitable[None]]


class PlatformAdapter(ABC):
    """
    Uniform inventory capability surface over one merchant's account on one platform.

    Implementations raise the platform error taxonomy from app.core.exceptions:
    NotFoundError, AuthExpiredError, RateLimitedError, ConflictError,
    PlatformTimeoutError and PlatformAPIError.
    """

    platform: PlatformName

    def __init__(self, api_credentials: Dict[str, str], token_refresher: Optional[TokenRefresher] = None):
        self.api_credentials = api_credentials
        self.token_refresher = token_refresher
        self._last_sync: Optional[datetime] = None
        self._sync_status = SyncStatus.PENDING

    @abstractmethod
    async def get_level(
        self,
        product_ref: str,
        variant_ref: Optional[str] = None,
        location_ref: Optional[str] = None,
    ) -> PlatformLevel:
        """Get current stock level from the platform"""
        pass

    @abstractmethod
    async def set_level(
        self,
        product_ref: str,
        variant_ref: Optional[str],
        quantity: int,
        location_ref: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> None:
        """Update stock level on the platform"""
        pass

    @abstractmethod
    async def set_active(self, product_ref: str, active: bool) -> None:
        """Make the product purchasable (or not) on the platform"""
        pass

    @abstractmethod
    def list_products(self) -> AsyncIterator[ProductInfo]:
        """Page through every product/variant on the platform"""
        pass

    async def refresh_credentials(self) -> None:
        """Ask the credential collaborator for a fresh token."""
        if self.token_refresher is None:
            raise AuthExpiredError("No token refresher configured", platform=self.platform.value)
        await self.token_refresher()

    async def sync_status(self) -> SyncStatus:
        return self._sync_status


