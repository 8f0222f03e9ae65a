"""
HSN code and GST rate resolution for products.

Resolution is an ordered list of strategies; the first one that answers
wins:

1. Product mapping - exact product id match
2. Collection mapping - first of the caller's collection ids that is mapped
   (caller's list order is the priority order)
3. Default - the merchant's (or engine's) default HSN code and rate

Ids are opaque: matched exactly, never case-folded or trimmed.
"""

from decimal import Decimal
from typing import Iterable, Protocol, Sequence

from core.models import HSNMapping, HSNResolution


class ResolutionStrategy(Protocol):
    def resolve(self, product_id: str, collection_ids: Sequence[str]) -> HSNResolution | None:
        ...


class ProductMappingStrategy:
    """Exact product-id match."""

    def __init__(self, mappings: Iterable[HSNMapping]):
        self._by_product: dict[str, HSNMapping] = {}
        for mapping in mappings:
            if mapping.product_id is not None:
                # Earliest row wins when a product is mapped twice
                self._by_product.setdefault(mapping.product_id, mapping)

    def resolve(self, product_id: str, collection_ids: Sequence[str]) -> HSNResolution | None:
        mapping = self._by_product.get(product_id)
        if mapping is None:
            return None
        return HSNResolution(hsn_code=mapping.hsn_code, gst_rate=mapping.gst_rate, source="product")


class CollectionMappingStrategy:
    """First mapped collection in the caller-supplied order."""

    def __init__(self, mappings: Iterable[HSNMapping]):
        self._by_collection: dict[str, HSNMapping] = {}
        for mapping in mappings:
            if mapping.collection_id is not None:
                self._by_collection.setdefault(mapping.collection_id, mapping)

    def resolve(self, product_id: str, collection_ids: Sequence[str]) -> HSNResolution | None:
        for collection_id in collection_ids:
            mapping = self._by_collection.get(collection_id)
            if mapping is not None:
                return HSNResolution(
                    hsn_code=mapping.hsn_code,
                    gst_rate=mapping.gst_rate,
                    source="collection",
                )
        return None


class DefaultStrategy:
    """Always answers with the configured defaults."""

    def __init__(self, hsn_code: str, gst_rate: Decimal):
        self._resolution = HSNResolution(hsn_code=hsn_code, gst_rate=gst_rate, source="default")

    def resolve(self, product_id: str, collection_ids: Sequence[str]) -> HSNResolution:
        return self._resolution


class HSNResolver:
    """
    Resolves products against one merchant's mapping table.

    Build once per invoice computation; the mapping table is treated as
    immutable for the resolver's lifetime.

    Usage:
        resolver = HSNResolver.from_mappings(mappings, "99999", Decimal("18"))
        resolution = resolver.resolve(line.product_id, line.collection_ids)
    """

    def __init__(self, strategies: Sequence[ResolutionStrategy]):
        if not strategies:
            raise ValueError("At least one resolution strategy is required")
        self.strategies = list(strategies)

    @classmethod
    def from_mappings(
        cls,
        mappings: Iterable[HSNMapping],
        default_hsn_code: str,
        default_gst_rate: Decimal,
    ) -> "HSNResolver":
        mappings = list(mappings)
        return cls([
            ProductMappingStrategy(mappings),
            CollectionMappingStrategy(mappings),
            DefaultStrategy(default_hsn_code, default_gst_rate),
        ])

    def resolve(self, product_id: str, collection_ids: Sequence[str] = ()) -> HSNResolution:
        for strategy in self.strategies:
            resolution = strategy.resolve(product_id, collection_ids)
            if resolution is not None:
                return resolution
        raise LookupError(f"No HSN resolution for product {product_id}")


def get_product_hsn(
    product_id: str,
    collection_ids: Sequence[str],
    mappings: Iterable[HSNMapping],
    default_hsn_code: str = "99999",
    default_gst_rate: Decimal = Decimal("18"),
) -> HSNResolution:
    """One-shot resolution for a single product."""
    resolver = HSNResolver.from_mappings(mappings, default_hsn_code, default_gst_rate)
    return resolver.resolve(product_id, collection_ids)
