import pytest

from gateway import AuthorizationError, NotFoundError, UpstreamError, ValidationError
from gateway.filters import QueryParams
from helpers.fake_store import (
    FakeStore,
    page,
    relation,
    rich,
    rollup_of_relation,
    schema,
    select,
    status,
    title,
    validation_error,
)
from helpers.world import (
    EXTERNAL_A,
    EXTERNAL_B,
    OWNER_A,
    OWNERS_DB,
    RECORDS_DB,
    booking_record,
    build_world,
    make_gateway,
    owners_schema,
)


def _store_with_records(records_schema, records) -> FakeStore:
    store = FakeStore()
    store.add_database(
        OWNERS_DB,
        owners_schema(),
        [page(OWNER_A, Name=title("Ada Artist"), ExternalOwnerID=rich(EXTERNAL_A))],
    )
    store.add_database(RECORDS_DB, records_schema, records)
    return store


@pytest.mark.asyncio
async def test_owner_update_writes_availability_comment_and_moves_status() -> None:
    store = build_world()
    gateway = make_gateway(store)

    result = await gateway.apply_update(
        "rec-1", EXTERNAL_A, {"availability": "yes", "comment": "Happy to play"}
    )

    assert result == {"ok": True}
    (page_id, properties), = store.updates
    assert page_id == "rec-1"
    assert properties == {
        "Artist availability": {"select": {"name": "Yes"}},
        "Artist comment": {"rich_text": [{"type": "text", "text": {"content": "Happy to play"}}]},
        "Status": {"status": {"name": "Responded"}},
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "patch",
    [{}, {"availability": "no"}, {"comment": "x", "Status": "Confirmed"}, {"availability": "bogus"}],
)
async def test_non_owner_is_rejected_regardless_of_patch(patch) -> None:
    store = build_world()
    gateway = make_gateway(store)

    with pytest.raises(AuthorizationError) as excinfo:
        await gateway.apply_update("rec-1", EXTERNAL_B, patch)

    assert excinfo.value.status_code == 403
    assert store.updates == []


@pytest.mark.asyncio
async def test_ownership_through_a_rollup_is_accepted() -> None:
    store = _store_with_records(
        schema(Gig="title", Owner="rollup", Status="status", Artist_comment="rich_text"),
        [
            page(
                "rec-roll",
                Gig=title("Rolled"),
                Owner=rollup_of_relation(OWNER_A),
                Status=status("Requested"),
                Artist_comment=rich(""),
            )
        ],
    )

    result = await make_gateway(store).apply_update("rec-roll", EXTERNAL_A, {"comment": "ok"})

    assert result == {"ok": True}
    (_, properties), = store.updates
    assert set(properties) == {"Artist comment", "Status"}


@pytest.mark.asyncio
async def test_write_uses_the_same_ownership_property_as_the_listing() -> None:
    # No relation name hints at ownership, so the first relation of the
    # collection schema wins; the page lists its properties in another order.
    store = _store_with_records(
        schema(Gig="title", Booker="relation", Event="relation", Availability="select"),
        [
            {
                "object": "page",
                "id": "rec-1",
                "url": "https://example.invalid/rec-1",
                "properties": {
                    "Event": relation("event-1"),
                    "Availability": select(None),
                    "Booker": relation(OWNER_A),
                    "Gig": title("Berlin Jazz Night"),
                },
            }
        ],
    )
    gateway = make_gateway(store)

    listed = await gateway.list_records(EXTERNAL_A, QueryParams())
    result = await gateway.apply_update("rec-1", EXTERNAL_A, {"availability": "yes"})

    assert [item["id"] for item in listed["results"]] == ["rec-1"]
    assert result == {"ok": True}
    assert store.updates == [("rec-1", {"Availability": {"select": {"name": "Yes"}}})]


@pytest.mark.asyncio
async def test_pages_outside_the_records_collection_are_not_writable() -> None:
    store = build_world()
    store.add_database("other-db", schema(Gig="title", Owner="relation"))
    store.add_record("other-db", booking_record("rec-other", "Elsewhere", OWNER_A, "Requested"))
    store.add_page(booking_record("rec-orphan", "Nowhere", OWNER_A, "Requested"))
    gateway = make_gateway(store)

    for record_id in ("rec-other", "rec-orphan"):
        with pytest.raises(NotFoundError) as excinfo:
            await gateway.apply_update(record_id, EXTERNAL_A, {"comment": "hi"})
        assert excinfo.value.details == {"recordId": record_id}
    assert store.updates == []


@pytest.mark.asyncio
async def test_blocked_status_rejects_every_write() -> None:
    store = build_world()

    with pytest.raises(AuthorizationError) as excinfo:
        await make_gateway(store).apply_update("rec-5", EXTERNAL_A, {"comment": "hi"})

    assert excinfo.value.details["status"] == "Potential"
    assert store.updates == []


@pytest.mark.asyncio
async def test_terminal_status_keeps_status_but_writes_other_fields() -> None:
    store = build_world()

    result = await make_gateway(store).apply_update(
        "rec-4", EXTERNAL_A, {"availability": "Other", "comment": "Already booked"}
    )

    assert result == {"ok": True}
    (_, properties), = store.updates
    assert "Status" not in properties
    assert properties["Artist availability"] == {"select": {"name": "Other"}}
    assert store.pages["rec-4"]["properties"]["Status"]["status"]["name"] == "Confirmed"


@pytest.mark.asyncio
async def test_unknown_fields_are_ignored_and_empty_values_clear() -> None:
    store = build_world()

    await make_gateway(store).apply_update(
        "rec-1",
        EXTERNAL_A,
        {"availability": "", "comment": "", "Gig": "Renamed", "Summary": "x"},
    )

    (_, properties), = store.updates
    assert set(properties) == {"Artist availability", "Artist comment", "Status"}
    assert properties["Artist availability"] == {"select": None}
    assert properties["Artist comment"] == {"rich_text": []}


@pytest.mark.asyncio
async def test_empty_patch_is_a_no_change() -> None:
    store = build_world()
    result = await make_gateway(store).apply_update("rec-1", EXTERNAL_A, {"foo": "bar"})
    assert result == {"ok": True, "noChange": True}
    assert store.calls_to("update_page") == []


@pytest.mark.asyncio
async def test_comment_is_truncated_to_the_configured_length() -> None:
    store = build_world()
    await make_gateway(store, comment_max_length=10).apply_update(
        "rec-1", EXTERNAL_A, {"comment": "x" * 50}
    )
    (_, properties), = store.updates
    assert properties["Artist comment"]["rich_text"][0]["text"]["content"] == "x" * 10


@pytest.mark.asyncio
async def test_invalid_availability_is_a_validation_error_for_owners() -> None:
    store = build_world()
    with pytest.raises(ValidationError):
        await make_gateway(store).apply_update("rec-1", EXTERNAL_A, {"availability": "all"})
    assert store.updates == []


@pytest.mark.asyncio
async def test_missing_ids_and_records() -> None:
    store = build_world()
    gateway = make_gateway(store)

    with pytest.raises(ValidationError):
        await gateway.apply_update("", EXTERNAL_A, {})
    with pytest.raises(ValidationError):
        await gateway.apply_update("rec-1", "", {})
    with pytest.raises(NotFoundError):
        await gateway.apply_update("rec-404", EXTERNAL_A, {"comment": "x"})
    with pytest.raises(NotFoundError):
        await gateway.apply_update("rec-1", "W-000", {"comment": "x"})


@pytest.mark.asyncio
async def test_store_rejection_of_the_update_is_an_upstream_error() -> None:
    store = build_world()

    async def _reject(page_id, properties):
        raise validation_error("Invalid status option")

    store.update_page = _reject

    with pytest.raises(UpstreamError) as excinfo:
        await make_gateway(store).apply_update("rec-1", EXTERNAL_A, {"availability": "no"})

    assert excinfo.value.details["body"]["message"] == "Invalid status option"


@pytest.mark.asyncio
async def test_writes_read_the_collection_schema_past_the_cache() -> None:
    store = build_world()
    gateway = make_gateway(store)
    # A cached role map that no longer matches the collection.
    await gateway.schema_cache.put(RECORDS_DB, schema(Gig="title", Event="relation"))

    result = await gateway.apply_update("rec-1", EXTERNAL_A, {"comment": "x"})

    assert result == {"ok": True}
    assert store.calls_to("retrieve_database") == [("retrieve_database", RECORDS_DB)]
    assert ("retrieve_page", "rec-1") in store.calls
