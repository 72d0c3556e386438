"""Credit package catalog.

The catalog is static configuration: it is built once per process by
``load_catalog()`` and handed to the services that need pricing.
"""

from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from quickleads.errors import ValidationError


@dataclass(frozen=True)
class CreditPackage:
    """A purchasable (credits, price) pair."""

    id: str
    credits: int
    price: Decimal

    @property
    def price_cents(self) -> int:
        return int(self.price * 100)

    @property
    def price_per_thousand(self) -> Decimal:
        return (self.price * 1000 / self.credits).quantize(Decimal("0.01"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "credits": self.credits,
            "price": float(self.price),
            "price_per_thousand": float(self.price_per_thousand),
        }


# (credits, price in USD)
_PACKAGES = (
    (5_000, "10.00"),
    (10_000, "19.00"),
    (50_000, "90.00"),
    (100_000, "170.00"),
    (500_000, "750.00"),
    (1_000_000, "1400.00"),
)


class CreditCatalog:
    """Read-only mapping of package id to package."""

    def __init__(self, packages: Mapping[str, CreditPackage]):
        self._packages = MappingProxyType(dict(packages))

    def __contains__(self, package_id: object) -> bool:
        return package_id in self._packages

    def __iter__(self) -> Iterator[CreditPackage]:
        return iter(sorted(self._packages.values(), key=lambda p: p.credits))

    def __len__(self) -> int:
        return len(self._packages)

    def get(self, package_id: str) -> CreditPackage:
        """Look up a package.

        Raises:
            ValidationError: If the package id is unknown
        """
        package = self._packages.get(str(package_id))
        if package is None:
            raise ValidationError(f"Invalid package: {package_id}")
        return package

    def packages(self) -> list[CreditPackage]:
        return list(self)


@lru_cache(maxsize=1)
def load_catalog() -> CreditCatalog:
    """Build the process-wide catalog."""
    return CreditCatalog(
        {
            str(credits): CreditPackage(id=str(credits), credits=credits, price=Decimal(price))
            for credits, price in _PACKAGES
        }
    )
