import logging

import pytest

from book import Branch, Stock
from conftest import FOX_ISBN, FOX_WORK
from errors import InvalidInput, InvalidLocation, InvalidStock, MetadataNotFound, NotFound
from open_library import BookMetadata


def test_import_creates_book_with_all_branches(library, resolver):
    book = library.import_book(isbn=FOX_ISBN, copies=3, branch="chennai", category="Fiction")

    assert book.title == "Fantastic Mr Fox"
    assert book.author == "Roald Dahl"
    assert book.isbn == FOX_ISBN
    assert book.work_key == FOX_WORK
    assert book.category == "Fiction"
    assert set(book.locations) == set(Branch)
    assert book.stock_at(Branch.CHENNAI) == Stock(total=3, available=3)
    assert book.stock_at(Branch.MUMBAI) == Stock()
    assert library.find_book(book.id).to_dict() == book.to_dict()


def test_import_same_isbn_merges_into_existing(library, fox):
    merged = library.import_book(isbn=FOX_ISBN, copies=1, branch="Mumbai")
    again = library.import_book(isbn=FOX_ISBN, copies=2, branch="Chennai")

    assert merged.id == again.id == fox.id
    assert len(library.list_books()) == 1
    assert again.stock_at(Branch.CHENNAI) == Stock(total=4, available=4)
    assert again.stock_at(Branch.MUMBAI) == Stock(total=1, available=1)


def test_import_matches_by_work_key(library, fox):
    book = library.import_book(work_key="OL45804W", copies=1, branch="Delhi")

    assert book.id == fox.id
    assert book.stock_at(Branch.DELHI) == Stock(total=1, available=1)


def test_import_title_match_backfills_work_key(library, resolver):
    resolver.by_isbn["0261102389"] = BookMetadata(title="The Lord of the Rings", author="J.R.R. Tolkien")
    first = library.import_book(isbn="0261102389", copies=1, branch="Bangalore")
    assert first.work_key is None

    merged = library.import_book(work_key="/works/OL27448W", copies=2, branch="Bangalore")

    assert merged.id == first.id
    assert merged.work_key == "/works/OL27448W"
    assert merged.stock_at(Branch.BANGALORE) == Stock(total=3, available=3)


def test_import_title_match_is_case_insensitive(library, resolver, fox):
    resolver.by_isbn["9780140348286"] = BookMetadata(title="FANTASTIC MR FOX", author="Roald Dahl")

    book = library.import_book(isbn="9780140348286", copies=1, branch="Delhi")

    assert book.id == fox.id
    assert book.isbn == FOX_ISBN


def test_import_falls_back_to_work_key(library, resolver):
    book = library.import_book(isbn="9999999999", work_key="/works/OL27448W", copies=1, branch="Delhi")

    assert book.title == "The Lord of the Rings"
    assert ("isbn", "9999999999") in resolver.calls
    assert ("work", "/works/OL27448W") in resolver.calls


def test_import_unknown_metadata_stores_nothing(library):
    with pytest.raises(MetadataNotFound):
        library.import_book(isbn="9999999999", copies=1, branch="Delhi")
    assert library.list_books() == []


@pytest.mark.parametrize("copies", [0, -2])
def test_import_rejects_non_positive_copies(library, copies):
    with pytest.raises(InvalidInput, match="greater than 0"):
        library.import_book(isbn=FOX_ISBN, copies=copies, branch="Chennai")


def test_import_rejects_na_isbn_without_work_key(library):
    with pytest.raises(InvalidInput, match="ISBN or a work key"):
        library.import_book(isbn="N/A", copies=1, branch="Chennai")


def test_import_rejects_malformed_identifiers(library):
    with pytest.raises(InvalidInput, match="ISBN"):
        library.import_book(isbn="12345", copies=1, branch="Chennai")
    with pytest.raises(InvalidInput, match="work key"):
        library.import_book(work_key="not-a-work", copies=1, branch="Chennai")


def test_import_rejects_unknown_branch(library, resolver):
    with pytest.raises(InvalidLocation):
        library.import_book(isbn=FOX_ISBN, copies=1, branch="Kolkata")
    assert resolver.calls == []


def test_edit_stock_overwrites_given_branches_only(library, fox):
    book = library.edit_stock(fox.id, {"Mumbai": {"total": 5, "available": 4}})

    assert book.stock_at(Branch.MUMBAI) == Stock(total=5, available=4)
    assert book.stock_at(Branch.CHENNAI) == Stock(total=2, available=2)
    assert library.find_book(fox.id).stock_at(Branch.MUMBAI) == Stock(total=5, available=4)


def test_edit_stock_available_above_total_rejected(library, fox):
    with pytest.raises(InvalidStock) as exc_info:
        library.edit_stock(fox.id, {"Delhi": {"total": 1, "available": 1}, "Mumbai": {"total": 1, "available": 2}})

    assert exc_info.value.branch == "Mumbai"
    assert library.find_book(fox.id).stock_at(Branch.DELHI) == Stock()


def test_edit_stock_negative_rejected(library, fox):
    with pytest.raises(InvalidStock):
        library.edit_stock(fox.id, {"Chennai": {"total": -1, "available": 0}})


def test_edit_stock_bad_payloads(library, fox):
    with pytest.raises(InvalidInput):
        library.edit_stock(fox.id, {})
    with pytest.raises(InvalidInput):
        library.edit_stock(fox.id, {"Chennai": {"total": 2}})
    with pytest.raises(InvalidInput):
        library.edit_stock(fox.id, {"Chennai": {"total": "2", "available": 1}})
    with pytest.raises(InvalidLocation):
        library.edit_stock(fox.id, {"Pune": {"total": 1, "available": 1}})


def test_edit_stock_unknown_book(library):
    with pytest.raises(NotFound):
        library.edit_stock("missing", {"Chennai": {"total": 1, "available": 1}})


def test_list_books_filters(library, fox):
    library.import_book(work_key="/works/OL27448W", copies=1, branch="Delhi", category="Fantasy")

    assert [b.title for b in library.list_books(category="fantasy")] == ["The Lord of the Rings"]
    assert [b.title for b in library.list_books(branch="Chennai")] == ["Fantastic Mr Fox"]
    assert library.list_books(branch="Mumbai") == []


def test_search_books_matches_title_or_author(library, fox):
    assert [b.id for b in library.search_books("mr fox")] == [fox.id]
    assert [b.id for b in library.search_books("DAHL")] == [fox.id]
    assert library.search_books("tolkien") == []


def test_search_external_delegates(library, resolver, search_results):
    resolver.results = search_results
    assert library.search_external("fox") == search_results
    assert resolver.calls[-1] == ("search", "fox")


def test_remove_book(library, fox):
    library.remove_book(fox.id)
    assert library.list_books() == []
    with pytest.raises(NotFound):
        library.remove_book(fox.id)


def test_remove_book_with_active_issue_warns(library, circulation, student, fox, caplog):
    circulation.issue_book(student.id, fox.id, "Chennai")

    with caplog.at_level(logging.WARNING):
        library.remove_book(fox.id)

    assert "still on loan" in caplog.text
    assert library.list_books() == []


def test_statistics(library, circulation, student, fox):
    library.import_book(work_key="/works/OL27448W", copies=1, branch="Delhi")
    circulation.issue_book(student.id, fox.id, "Chennai")

    stats = library.get_statistics()

    assert stats["total_titles"] == 2
    assert stats["total_copies"] == 3
    assert stats["available_copies"] == 2
    assert stats["active_issues"] == 1
    assert stats["branches"]["Chennai"] == {"total": 2, "available": 1}
    assert stats["branches"]["Mumbai"] == {"total": 0, "available": 0}


def test_import_editions_of_one_work_stay_separate(library, resolver, fox):
    resolver.by_isbn["9782070612871"] = BookMetadata(title="Fantastique Maitre Renard", author="Roald Dahl",
                                                     work_key=FOX_WORK)

    renard = library.import_book(isbn="9782070612871", copies=1, branch="Delhi")

    assert renard.id != fox.id
    assert renard.isbn == "9782070612871"
    assert renard.work_key == FOX_WORK
    assert len(library.list_books()) == 2
    assert library.find_book(fox.id).stock_at(Branch.DELHI) == Stock()


def test_import_uses_first_subject_as_default_category(library, resolver):
    resolver.by_isbn["9780261103573"] = BookMetadata(title="The Fellowship of the Ring", author="J.R.R. Tolkien",
                                                     subjects=["Fantasy fiction", "Middle Earth"])

    book = library.import_book(isbn="9780261103573", copies=1, branch="Mumbai")
    assert book.category == "Fantasy fiction"

    again = library.import_book(isbn=FOX_ISBN, copies=1, branch="Mumbai", category="Children")
    assert again.category == "Children"
