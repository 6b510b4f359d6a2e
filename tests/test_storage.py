import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from linktrack.core.errors import CodeConflict, NotFound, ValidationError
from linktrack.models.click import UNKNOWN_IP
from linktrack.models.link import DEFAULT_TITLE


async def add_click(store, link_id, ip="1.2.3.4", referrer="", country=None):
    return await store.record_click(
        link_id,
        ip_address=ip,
        user_agent="pytest",
        referrer=referrer,
        country=country,
    )


async def test_create_and_fetch(store):
    link = await store.create_link(
        "https://example.com/page",
        title="Example",
        source="newsletter",
    )

    assert len(link.short_code) == 6
    assert link.click_count == 0
    assert link.created_at.tzinfo is not None

    by_code = await store.get_link_by_code(link.short_code)
    by_id = await store.get_link_by_id(link.id)
    by_str_id = await store.get_link_by_id(str(link.id))
    for found in (by_code, by_id, by_str_id):
        assert found is not None
        assert found.id == link.id
        assert found.destination_url == "https://example.com/page"
        assert found.title == "Example"
        assert found.source == "newsletter"


async def test_default_title_and_blank_source(store):
    link = await store.create_link("https://example.com", title="  ", source="")
    assert link.title == DEFAULT_TITLE
    assert link.source is None


@pytest.mark.parametrize("url", ["", "   ", None])
async def test_blank_destination_rejected(store, url):
    with pytest.raises(ValidationError):
        await store.create_link(url)
    assert await store.list_links() == []


async def test_custom_code(store):
    link = await store.create_link("https://example.com", custom_code="Promo_2024")
    assert link.short_code == "Promo_2024"
    assert (await store.get_link_by_code("Promo_2024")).id == link.id
    # Codes are case-sensitive
    assert await store.get_link_by_code("promo_2024") is None


async def test_malformed_custom_code_rejected(store):
    with pytest.raises(ValidationError):
        await store.create_link("https://example.com", custom_code="no spaces")


async def test_custom_code_conflict_leaves_store_unchanged(store):
    first = await store.create_link("https://one.example", custom_code="taken")

    with pytest.raises(CodeConflict):
        await store.create_link("https://two.example", custom_code="taken")

    links = await store.list_links()
    assert [link.id for link in links] == [first.id]
    assert (await store.get_link_by_code("taken")).destination_url == "https://one.example"


async def test_random_code_collision_retries(store, monkeypatch):
    await store.create_link("https://one.example", custom_code="AAAAAA")
    codes = iter(["AAAAAA", "BBBBBB"])
    monkeypatch.setattr("linktrack.storage.base.generate_short_code", lambda: next(codes))

    link = await store.create_link("https://two.example")

    assert link.short_code == "BBBBBB"
    assert len(await store.list_links()) == 2


async def test_random_code_attempts_exhausted(store, monkeypatch):
    await store.create_link("https://one.example", custom_code="AAAAAA")
    monkeypatch.setattr("linktrack.storage.base.generate_short_code", lambda: "AAAAAA")

    with pytest.raises(CodeConflict):
        await store.create_link("https://two.example")

    assert len(await store.list_links()) == 1


async def test_list_newest_first(store):
    created = [await store.create_link(f"https://example.com/{i}") for i in range(5)]

    listed = await store.list_links()

    assert [link.id for link in listed] == [link.id for link in reversed(created)]


async def test_record_click_increments_counter(store):
    link = await store.create_link("https://example.com")

    for i in range(5):
        await add_click(store, link.id, ip=f"10.0.0.{i}")

    refreshed = await store.get_link_by_id(link.id)
    clicks = await store.list_clicks(link.id)
    assert refreshed.click_count == 5
    assert len(clicks) == 5
    assert [click.ip_address for click in clicks] == [f"10.0.0.{i}" for i in range(5)]


async def test_click_defaults(store):
    link = await store.create_link("https://example.com")

    click = await store.record_click(link.id, ip_address="", user_agent="", referrer="")

    assert click.link_id == link.id
    assert click.ip_address == UNKNOWN_IP
    assert click.user_agent == ""
    assert click.referrer == ""
    assert click.country is None
    assert click.city is None


async def test_record_click_unknown_link(store):
    with pytest.raises(NotFound):
        await add_click(store, uuid.uuid4())
    with pytest.raises(NotFound):
        await add_click(store, "not-a-uuid")

    assert (await store.stats())["clicks_count"] == 0


async def test_delete_removes_link_and_clicks(store):
    link = await store.create_link("https://example.com", custom_code="gone")
    other = await store.create_link("https://other.example")
    await add_click(store, link.id)
    await add_click(store, link.id)
    await add_click(store, other.id)

    deleted = await store.delete_link(link.id)

    assert deleted is not None
    assert deleted.short_code == "gone"
    assert await store.get_link_by_id(link.id) is None
    assert await store.get_link_by_code("gone") is None
    assert await store.list_clicks(link.id) == []
    assert await store.stats() == {"links_count": 1, "clicks_count": 1}


async def test_delete_is_idempotent(store):
    link = await store.create_link("https://example.com")

    assert await store.delete_link(link.id) is not None
    assert await store.delete_link(link.id) is None
    assert await store.delete_link(uuid.uuid4()) is None
    assert await store.delete_link("not-a-uuid") is None


async def test_deleted_code_can_be_reused(store):
    link = await store.create_link("https://example.com", custom_code="reuse")
    await store.delete_link(link.id)

    again = await store.create_link("https://new.example", custom_code="reuse")

    assert again.id != link.id
    assert (await store.get_link_by_code("reuse")).destination_url == "https://new.example"


async def test_malformed_ids_are_not_found(store):
    assert await store.get_link_by_id("123") is None
    assert await store.list_clicks("123") == []


async def test_stats(store):
    assert await store.stats() == {"links_count": 0, "clicks_count": 0}

    link = await store.create_link("https://example.com")
    await store.create_link("https://other.example")
    await add_click(store, link.id)

    assert await store.stats() == {"links_count": 2, "clicks_count": 1}


async def test_concurrent_clicks_are_all_counted(store):
    link = await store.create_link("https://example.com")

    await asyncio.gather(*(add_click(store, link.id, ip=f"10.0.0.{i}") for i in range(30)))

    assert (await store.get_link_by_id(link.id)).click_count == 30
    assert len(await store.list_clicks(link.id)) == 30


async def test_concurrent_custom_codes_single_winner(store):
    results = await asyncio.gather(
        *(store.create_link(f"https://example.com/{i}", custom_code="race") for i in range(10)),
        return_exceptions=True,
    )

    winners = [result for result in results if not isinstance(result, Exception)]
    assert len(winners) == 1
    assert all(isinstance(r, CodeConflict) for r in results if isinstance(r, Exception))
    assert (await store.stats())["links_count"] == 1


async def test_timestamps_read_back_as_utc(store):
    link = await store.create_link("https://example.com")
    click = await add_click(store, link.id)

    (listed,) = await store.list_links()
    (stored_click,) = await store.list_clicks(link.id)

    assert listed.created_at.utcoffset() == timedelta(0)
    assert stored_click.clicked_at.utcoffset() == timedelta(0)
    assert listed.created_at == link.created_at
    assert stored_click.clicked_at == click.clicked_at


async def test_sql_equal_timestamps_ordered_by_id(sql_store, monkeypatch):
    # Several processes writing to one database can produce equal timestamps
    fixed = datetime(2024, 1, 1, tzinfo=timezone.utc)
    monkeypatch.setattr(sql_store, "_now", lambda: fixed)
    links = [await sql_store.create_link(f"https://example.com/{i}") for i in range(5)]
    clicks = [await add_click(sql_store, links[0].id, ip=f"10.0.0.{i}") for i in range(5)]

    listed = await sql_store.list_links()
    stored_clicks = await sql_store.list_clicks(links[0].id)

    assert [link.id for link in listed] == sorted((link.id for link in links), reverse=True)
    assert [click.id for click in stored_clicks] == sorted(click.id for click in clicks)
