import pytest

from conftest import piece_file
from piece_search.core.exceptions import CorpusUnavailableError, InvalidDocumentError
from piece_search.models.piece import Mood
from piece_search.services.pieces import (
    PieceService,
    count_words,
    parse_date,
    read_time_minutes,
)


@pytest.mark.asyncio
async def test_returns_empty_list_when_directory_is_missing(content_dir):
    service = PieceService(str(content_dir))

    assert await service.list_pieces() == []


@pytest.mark.asyncio
async def test_unreadable_directory_raises(content_dir):
    content_dir.parent.mkdir(parents=True)
    content_dir.write_text("not a directory", encoding="utf-8")
    service = PieceService(str(content_dir))

    with pytest.raises(CorpusUnavailableError):
        await service.list_pieces()


@pytest.mark.asyncio
async def test_parses_metadata_and_sorts_pinned_first(content_dir, write_piece):
    long_content = " ".join(f"word{i}" for i in range(221))
    write_piece(
        "alpha.md",
        piece_file(1, title="Alpha", date="2025.01.02", excerpt="Alpha excerpt", body=long_content),
    )
    write_piece(
        "bravo.md",
        piece_file(2, title="Bravo", date="2025.01.01", moods=("critical",), pinned=True,
                   body="Short content."),
    )
    write_piece(
        "charlie.md",
        piece_file(3, title="Charlie", date="2025.01.03", moods=("exploratory",),
                   body="Another short block."),
    )

    pieces = await PieceService(str(content_dir)).list_pieces()

    assert [piece.id for piece in pieces] == [2, 3, 1]
    alpha = next(piece for piece in pieces if piece.id == 1)
    assert alpha.word_count == 221
    assert alpha.read_time_minutes == 2
    assert alpha.read_time == "2 min"
    assert alpha.slug == "alpha"
    assert alpha.published_at == 1735776000000
    assert alpha.mood == [Mood.ANALYTICAL]
    assert alpha.excerpt == "Alpha excerpt"


@pytest.mark.asyncio
async def test_same_date_falls_back_to_descending_id(content_dir, write_piece):
    write_piece("low.md", piece_file(4, date="2025-03-01"))
    write_piece("high.md", piece_file(9, date="2025.03.01"))

    pieces = await PieceService(str(content_dir)).list_pieces()

    assert [piece.id for piece in pieces] == [9, 4]


@pytest.mark.asyncio
async def test_ignores_non_markdown_files(content_dir, write_piece):
    write_piece("one.md", piece_file(1))
    write_piece("notes.txt", "scratch")

    pieces = await PieceService(str(content_dir)).list_pieces()

    assert [piece.slug for piece in pieces] == ["one"]


@pytest.mark.asyncio
async def test_moods_are_case_insensitive_and_unknown_values_dropped(content_dir, write_piece):
    write_piece("moody.md", piece_file(5, moods=("Analytical", "dreamy", "CRITICAL")))

    pieces = await PieceService(str(content_dir)).list_pieces()

    assert pieces[0].mood == [Mood.ANALYTICAL, Mood.CRITICAL]


@pytest.mark.asyncio
async def test_scalar_mood_is_accepted(content_dir, write_piece):
    write_piece(
        "scalar.md",
        "---\nid: 6\ntitle: T\ndate: 2025.01.05\nmood: contemplative\nexcerpt: E\n---\nBody.\n",
    )

    pieces = await PieceService(str(content_dir)).list_pieces()

    assert pieces[0].mood == [Mood.CONTEMPLATIVE]
    assert pieces[0].pinned is False


@pytest.mark.asyncio
async def test_invalid_mood_fails_whole_corpus(content_dir, write_piece):
    write_piece("good.md", piece_file(1))
    write_piece(
        "invalid.md",
        "---\nid: 9\ntitle: Invalid Mood\ndate: 2025.01.05\nmood: unknown\n"
        "excerpt: Bad mood\npinned: false\n---\n\nContent.\n",
    )

    with pytest.raises(InvalidDocumentError, match='Invalid or missing "mood"') as exc_info:
        await PieceService(str(content_dir)).list_pieces()

    assert exc_info.value.filename == "invalid.md"
    assert exc_info.value.field == "mood"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"piece_id": "abc"}, "id"),
        ({"piece_id": "1.5"}, "id"),
        ({"title": '""'}, "title"),
        ({"excerpt": "''"}, "excerpt"),
        ({"date": "yesterday"}, "date"),
        ({"date": "2025.13.40"}, "date"),
    ],
)
async def test_field_validation_names_field_and_file(content_dir, write_piece, overrides, field):
    kwargs = {"piece_id": 1}
    kwargs.update(overrides)
    piece_id = kwargs.pop("piece_id")
    write_piece("broken.md", piece_file(piece_id, **kwargs))

    with pytest.raises(InvalidDocumentError) as exc_info:
        await PieceService(str(content_dir)).list_pieces()

    assert exc_info.value.field == field
    assert "broken.md" in str(exc_info.value)


@pytest.mark.asyncio
async def test_duplicate_ids_are_rejected(content_dir, write_piece):
    write_piece("a.md", piece_file(3))
    write_piece("b.md", piece_file(3))

    with pytest.raises(InvalidDocumentError, match="Duplicate"):
        await PieceService(str(content_dir)).list_pieces()


@pytest.mark.asyncio
async def test_pinned_accepts_yes_and_one(content_dir, write_piece):
    write_piece(
        "yes.md",
        "---\nid: 1\ntitle: T\ndate: 2025.01.01\nmood: critical\nexcerpt: E\npinned: Yes\n---\nB\n",
    )
    write_piece(
        "one.md",
        "---\nid: 2\ntitle: T\ndate: 2024.01.01\nmood: critical\nexcerpt: E\npinned: 1\n---\nB\n",
    )
    write_piece("no.md", piece_file(3, date="2026.01.01"))

    pieces = await PieceService(str(content_dir)).list_pieces()

    assert [piece.id for piece in pieces] == [1, 2, 3]
    assert [piece.pinned for piece in pieces] == [True, True, False]


@pytest.mark.asyncio
async def test_get_piece_by_slug(content_dir, write_piece):
    write_piece("found.md", piece_file(1, title="Found"))
    service = PieceService(str(content_dir))

    assert (await service.get_piece_by_slug("found")).title == "Found"
    assert await service.get_piece_by_slug("missing") is None


def test_count_words_and_read_time():
    assert count_words("") == 0
    assert count_words("  one\ttwo\n\nthree  ") == 3
    assert read_time_minutes(0) == 1
    assert read_time_minutes(220) == 1
    assert read_time_minutes(221) == 2


def test_parse_date_accepts_dots_and_dashes():
    assert parse_date("2025.01.02", "x.md") == parse_date("2025-01-02", "x.md") == 1735776000000
