import random

import pytest

from app.core.enums import MappingMethod, PlatformName
from app.integrations.base import ProductInfo
from app.services.mapping_resolver import (
    MappingLink,
    MappingResolver,
    ProductSnapshot,
    ResolvedMapping,
    resolve_siblings,
)
from tests.conftest import MERCHANT_ID

STRIPE = PlatformName.STRIPE
SHOPIFY = PlatformName.SHOPIFY
ETSY = PlatformName.ETSY
OTHERS = [SHOPIFY, ETSY]


def snap(platform, ref, variant=None, title=None, sku=None):
    return ProductSnapshot(platform, ref, variant, title, sku)


"""
1. Match precedence
"""

def test_explicit_mapping_beats_sku_and_name():
    source = snap(STRIPE, "prod_1", title="Fuzz", sku="ABC-123")
    candidates = [snap(SHOPIFY, "111", title="Fuzz", sku="ABC-123"), snap(SHOPIFY, "222")]
    links = [MappingLink(STRIPE, "prod_1", SHOPIFY, "222")]

    resolved = resolve_siblings(source, links, candidates, OTHERS)

    assert resolved == [ResolvedMapping(SHOPIFY, "222", None, MappingMethod.EXPLICIT)]


def test_explicit_mapping_is_bidirectional():
    source = snap(SHOPIFY, "222", variant="9")
    links = [MappingLink(STRIPE, "prod_1", SHOPIFY, "222", variant_b="9")]

    resolved = resolve_siblings(source, links, [], [STRIPE, ETSY])

    assert resolved == [ResolvedMapping(STRIPE, "prod_1", None, MappingMethod.EXPLICIT)]


def test_variant_scoped_mapping_only_matches_its_variant():
    links = [MappingLink(STRIPE, "prod_1", SHOPIFY, "222", variant_b="9")]

    assert resolve_siblings(snap(SHOPIFY, "222", variant="8"), links, [], [STRIPE]) == []


def test_sku_beats_name():
    source = snap(STRIPE, "prod_1", title="Fuzz", sku="ABC-123")
    candidates = [snap(SHOPIFY, "111", title="Fuzz"), snap(SHOPIFY, "999", sku="ABC-123")]

    resolved = resolve_siblings(source, [], candidates, OTHERS)

    assert resolved == [ResolvedMapping(SHOPIFY, "999", None, MappingMethod.SKU)]


def test_name_is_the_fallback():
    source = snap(STRIPE, "prod_1", title="Fuzz", sku="ABC-123")
    candidates = [snap(ETSY, "700", title="Fuzz", sku="OTHER")]

    resolved = resolve_siblings(source, [], candidates, OTHERS)

    assert resolved == [ResolvedMapping(ETSY, "700", None, MappingMethod.NAME)]


def test_matching_is_case_sensitive():
    source = snap(STRIPE, "prod_1", title="Fuzz Pedal", sku="abc-123")
    candidates = [snap(SHOPIFY, "111", title="fuzz pedal", sku="ABC-123")]

    assert resolve_siblings(source, [], candidates, OTHERS) == []


def test_empty_sku_and_title_never_match():
    source = snap(STRIPE, "prod_1", title="", sku=None)
    candidates = [snap(SHOPIFY, "111", title="", sku=None)]

    assert resolve_siblings(source, [], candidates, OTHERS) == []


def test_candidates_on_other_platforms_are_ignored():
    source = snap(STRIPE, "prod_1", sku="ABC-123")
    candidates = [snap(STRIPE, "prod_2", sku="ABC-123"), snap(ETSY, "700", sku="ABC-123")]

    resolved = resolve_siblings(source, [], candidates, [SHOPIFY])

    assert resolved == []


"""
2. Determinism
"""

def test_ties_go_to_the_lowest_numeric_ref():
    source = snap(STRIPE, "prod_1", title="Fuzz")
    candidates = [snap(SHOPIFY, "1000", title="Fuzz"), snap(SHOPIFY, "999", title="Fuzz"), snap(SHOPIFY, "abc", title="Fuzz")]

    resolved = resolve_siblings(source, [], candidates, OTHERS)

    assert resolved[0].product_ref == "999"


def test_ties_within_a_product_go_to_the_lowest_variant():
    source = snap(STRIPE, "prod_1", sku="ABC-123")
    candidates = [snap(SHOPIFY, "111", "30", sku="ABC-123"), snap(SHOPIFY, "111", "4", sku="ABC-123")]

    resolved = resolve_siblings(source, [], candidates, OTHERS)

    assert (resolved[0].product_ref, resolved[0].variant_ref) == ("111", "4")


def test_same_snapshot_gives_same_answer_in_any_order():
    source = snap(ETSY, "700", title="Fuzz", sku="ABC-123")
    candidates = [
        snap(STRIPE, "prod_b", sku="ABC-123"),
        snap(STRIPE, "prod_a", sku="ABC-123"),
        snap(SHOPIFY, "12", title="Fuzz"),
        snap(SHOPIFY, "3", title="Fuzz"),
    ]
    expected = resolve_siblings(source, [], candidates, [SHOPIFY, STRIPE])

    rng = random.Random(7)
    for _ in range(10):
        shuffled = candidates[:]
        rng.shuffle(shuffled)
        assert resolve_siblings(source, [], shuffled, [STRIPE, SHOPIFY]) == expected

    assert expected == [
        ResolvedMapping(STRIPE, "prod_a", None, MappingMethod.SKU),
        ResolvedMapping(SHOPIFY, "3", None, MappingMethod.NAME),
    ]


"""
3. MappingResolver over the store
"""

@pytest.mark.asyncio
async def test_resolver_reads_source_record_from_store(store):
    await store.upsert_product(MERCHANT_ID, STRIPE, ProductInfo(product_ref="prod_1", title="Fuzz", sku="ABC-123"))
    await store.upsert_product(
        MERCHANT_ID, SHOPIFY, ProductInfo(product_ref="111", variant_ref="5", title="Fuzz", sku="ABC-123")
    )
    await store.upsert_product("merchant_2", ETSY, ProductInfo(product_ref="700", title="Fuzz", sku="ABC-123"))
    resolver = MappingResolver(store, cache_ttl=0)

    resolved = await resolver.resolve(MERCHANT_ID, STRIPE, "prod_1", None, OTHERS)

    assert resolved == [ResolvedMapping(SHOPIFY, "111", "5", MappingMethod.SKU)]


@pytest.mark.asyncio
async def test_unknown_source_only_resolves_explicitly(store):
    await store.upsert_product(MERCHANT_ID, SHOPIFY, ProductInfo(product_ref="111", title="Fuzz"))
    resolver = MappingResolver(store, cache_ttl=0)

    assert await resolver.resolve(MERCHANT_ID, STRIPE, "prod_new", None, OTHERS) == []


@pytest.mark.asyncio
async def test_saving_a_mapping_invalidates_the_cache(store):
    resolver = MappingResolver(store, cache_ttl=3600)
    assert await resolver.resolve(MERCHANT_ID, STRIPE, "prod_1", None, OTHERS) == []

    await resolver.save_mapping(MERCHANT_ID, STRIPE, "prod_1", ETSY, "700", created_by="user_1")

    resolved = await resolver.resolve(MERCHANT_ID, STRIPE, "prod_1", None, OTHERS)
    assert resolved == [ResolvedMapping(ETSY, "700", None, MappingMethod.EXPLICIT)]


@pytest.mark.asyncio
async def test_cached_links_are_reused(store, mocker):
    resolver = MappingResolver(store, cache_ttl=3600)
    spy = mocker.spy(store, "get_explicit_mappings")

    await resolver.resolve(MERCHANT_ID, STRIPE, "prod_1", None, OTHERS)
    await resolver.resolve(MERCHANT_ID, STRIPE, "prod_2", None, OTHERS)

    assert spy.call_count == 1


@pytest.mark.asyncio
async def test_no_targets_means_no_lookups(store, mocker):
    resolver = MappingResolver(store)
    spy = mocker.spy(store, "list_products")

    assert await resolver.resolve(MERCHANT_ID, STRIPE, "prod_1", None, [STRIPE]) == []
    assert spy.call_count == 0
