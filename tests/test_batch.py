import json

import pytest

from conftest import StubEmbeddingService, make_piece, make_record, piece_file
from piece_search.core.exceptions import (
    EmbeddingBatchMismatchError,
    EmbeddingDimensionMismatchError,
    EmbeddingProviderError,
    MissingCredentialError,
)
from piece_search.models.embedding import EmbeddingPayload
from piece_search.services.batch import EmbeddingBatchBuilder, chunk_items, merge_records
from piece_search.services.chunking import FragmentService
from piece_search.services.embedding_store import EmbeddingStoreService
from piece_search.services.pieces import PieceService


@pytest.fixture
def corpus(write_piece):
    write_piece(
        "rivers.md",
        piece_file(1, title="Rivers", date="2025.01.01",
                   body="The river bends past the mill.\n\nA second river paragraph here."),
    )
    write_piece(
        "cities.md",
        piece_file(2, title="Cities", date="2025.01.02",
                   body="Every city hums at night.\n\nshort\n\nThe city wakes before dawn."),
    )


def make_builder(content_dir, store_path, embedding_service, batch_size=2):
    return EmbeddingBatchBuilder(
        piece_service=PieceService(str(content_dir)),
        fragment_service=FragmentService(min_length=10),
        embedding_service=embedding_service,
        store_service=EmbeddingStoreService(str(store_path)),
        batch_size=batch_size,
        piece_body_chars=1200,
        version_tag="pieces-v1",
    )


def read_store(store_path):
    return json.loads(store_path.read_text(encoding="utf-8"))


@pytest.mark.asyncio
async def test_first_build_embeds_everything(corpus, content_dir, store_path, stub_embedding_service):
    builder = make_builder(content_dir, store_path, stub_embedding_service)

    summary = await builder.build()

    assert summary.new_fragments == 4
    assert summary.new_pieces == 2
    assert summary.dimensions == 4
    assert summary.output_path == str(store_path)
    assert [len(call) for call in stub_embedding_service.calls] == [2, 2, 2]

    data = read_store(store_path)
    assert data["version"] == "stub-embedding::pieces-v1"
    assert data["model"] == "stub-embedding"
    assert data["createdAt"].endswith("Z")
    assert [r["id"] for r in data["fragments"]] == [
        "piece-001-fragment-001",
        "piece-001-fragment-002",
        "piece-002-fragment-001",
        "piece-002-fragment-002",
    ]
    assert [r["id"] for r in data["pieceEmbeddings"]] == ["cities", "rivers"]
    assert {r["fragmentOrder"] for r in data["pieceEmbeddings"]} == {0}


@pytest.mark.asyncio
async def test_second_build_embeds_only_new_items(
    corpus, content_dir, store_path, write_piece, stub_embedding_service
):
    await make_builder(content_dir, store_path, stub_embedding_service).build()

    rerun = StubEmbeddingService()
    summary = await make_builder(content_dir, store_path, rerun).build()
    assert summary.new_fragments == 0
    assert summary.new_pieces == 0
    assert rerun.calls == []

    write_piece("machines.md", piece_file(3, title="Machines", body="A machine hums in the corner."))
    delta = StubEmbeddingService()
    summary = await make_builder(content_dir, store_path, delta).build()

    assert summary.new_fragments == 1
    assert summary.new_pieces == 1
    assert summary.total_fragments == 5
    assert summary.total_pieces == 3
    assert delta.calls[0] == ["A machine hums in the corner."]


@pytest.mark.asyncio
async def test_force_rebuilds_everything(corpus, content_dir, store_path, stub_embedding_service):
    await make_builder(content_dir, store_path, stub_embedding_service).build()

    forced = StubEmbeddingService()
    summary = await make_builder(content_dir, store_path, forced).build(force=True)

    assert summary.new_fragments == 4
    assert summary.new_pieces == 2
    assert sum(len(call) for call in forced.calls) == 6


@pytest.mark.asyncio
async def test_piece_text_uses_title_excerpt_and_body_prefix(content_dir, store_path, write_piece):
    body = "river " * 400
    write_piece("long.md", piece_file(1, title="Long", excerpt="Long excerpt", body=body))
    service = StubEmbeddingService()
    builder = make_builder(content_dir, store_path, service, batch_size=16)

    await builder.build()

    piece_inputs = service.calls[-1]
    assert piece_inputs == ["Long\n\nLong excerpt\n\n" + body.strip()[:1200]]


def test_piece_text_prefix_length():
    builder = EmbeddingBatchBuilder(None, None, StubEmbeddingService(), None, piece_body_chars=5)
    piece = make_piece(1, "p", "abcdefghij", title="T")

    assert builder.piece_text(piece) == "T\n\nExcerpt\n\nabcde"


@pytest.mark.asyncio
async def test_batch_mismatch_aborts_without_writing(corpus, content_dir, store_path):
    service = StubEmbeddingService()
    service.drop_last = True

    with pytest.raises(EmbeddingBatchMismatchError, match="received 1, expected 2"):
        await make_builder(content_dir, store_path, service).build()
    assert not store_path.exists()


@pytest.mark.asyncio
async def test_provider_failure_leaves_existing_store_untouched(
    corpus, content_dir, store_path, stub_embedding_service
):
    await make_builder(content_dir, store_path, stub_embedding_service).build()
    before = store_path.read_text(encoding="utf-8")

    failing = StubEmbeddingService()
    failing.fail_on_call = 2
    with pytest.raises(EmbeddingProviderError):
        await make_builder(content_dir, store_path, failing).build(force=True)

    assert store_path.read_text(encoding="utf-8") == before


@pytest.mark.asyncio
async def test_missing_credential_fails_before_any_work(corpus, content_dir, store_path):
    service = StubEmbeddingService(api_key=None)

    with pytest.raises(MissingCredentialError):
        await make_builder(content_dir, store_path, service).build()
    assert service.calls == []
    assert not store_path.exists()


@pytest.mark.asyncio
async def test_width_change_against_existing_store_requires_force(
    corpus, content_dir, store_path, stub_embedding_service
):
    existing = EmbeddingPayload(
        version="old::pieces-v1",
        model="stub-embedding",
        created_at="2024-01-01T00:00:00.000Z",
        dimensions=3,
        fragments=[make_record("piece-001-fragment-001", 1, "rivers", [1.0, 0.0, 0.0], order=1)],
    )
    EmbeddingStoreService(str(store_path)).write_payload(existing)

    with pytest.raises(EmbeddingDimensionMismatchError):
        await make_builder(content_dir, store_path, stub_embedding_service).build()

    summary = await make_builder(content_dir, store_path, StubEmbeddingService()).build(force=True)
    assert summary.dimensions == 4


def test_chunk_items():
    assert chunk_items([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunk_items([], 16) == []
    with pytest.raises(ValueError):
        chunk_items([1], 0)


def test_merge_records_replaces_on_collision_and_sorts():
    old = [make_record("b", 1, "x", [1.0]), make_record("a", 1, "x", [1.0])]
    fresh = [make_record("b", 1, "x", [2.0]), make_record("c", 1, "x", [3.0])]

    merged = merge_records(old, fresh)

    assert [r.id for r in merged] == ["a", "b", "c"]
    assert merged[1].embedding == [2.0]
