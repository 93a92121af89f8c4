"""
Content Store Tests

Covers reading modes and the SQLAlchemy-backed store:
- LIVE reads only see published rows of versioned models
- get() bypasses the identity map
- reading_mode() restores the previous mode
- get_session() commits or rolls back
"""

from contextlib import contextmanager

import pytest

from search_sync.db import session as db_session
from search_sync.db.store import (
    ReadingMode,
    SqlAlchemyContentStore,
    current_reading_mode,
    reading_mode,
)

from content_models import Article, Listing, Page, SearchableListing, Snippet


@pytest.fixture
def populated(session_factory):
    with session_factory() as session:
        session.add_all([
            Page(id=1, Title="Draft", published=False, show_in_search=True),
            Page(id=2, Title="Live", published=True, show_in_search=True),
            Snippet(id=1, Text="unpublished", published=False),
            Article(id=1, Title="Plain"),
            Listing(id=1, Heading="plain"),
            SearchableListing(id=2, Heading="searchable"),
        ])
        session.commit()
    return session_factory


class TestReadingMode:

    def test_default_is_stage(self):
        assert current_reading_mode() is ReadingMode.STAGE

    def test_scoped_and_restored(self):
        with reading_mode(ReadingMode.LIVE) as mode:
            assert mode is ReadingMode.LIVE
            assert current_reading_mode() is ReadingMode.LIVE

            with reading_mode(ReadingMode.STAGE):
                assert current_reading_mode() is ReadingMode.STAGE

            assert current_reading_mode() is ReadingMode.LIVE

        assert current_reading_mode() is ReadingMode.STAGE

    def test_restored_when_block_raises(self):
        with pytest.raises(ValueError):
            with reading_mode(ReadingMode.LIVE):
                raise ValueError("boom")

        assert current_reading_mode() is ReadingMode.STAGE


class TestSqlAlchemyContentStore:

    def test_stage_sees_drafts(self, populated, registry):
        with populated() as session:
            store = SqlAlchemyContentStore(session)
            page = store.get(registry.get("Page"), (1,), mode=ReadingMode.STAGE)

        assert page.Title == "Draft"

    def test_live_hides_unpublished(self, populated, registry):
        with populated() as session:
            store = SqlAlchemyContentStore(session)

            assert store.get(registry.get("Page"), (1,), mode=ReadingMode.LIVE) is None
            assert store.get(registry.get("Page"), (2,), mode=ReadingMode.LIVE).Title == "Live"
            assert store.all(registry.get("Snippet"), mode=ReadingMode.LIVE) == []

    def test_live_does_not_filter_unversioned(self, populated, registry):
        with populated() as session:
            store = SqlAlchemyContentStore(session)
            articles = store.all(registry.get("Article"), mode=ReadingMode.LIVE)

        assert [a.Title for a in articles] == ["Plain"]

    def test_mode_defaults_to_active_one(self, populated, registry):
        with populated() as session:
            store = SqlAlchemyContentStore(session)

            with reading_mode(ReadingMode.LIVE):
                pages = store.all(registry.get("Page"))

        assert [p.id for p in pages] == [2]

    def test_all_includes_subclasses(self, populated, registry):
        with populated() as session:
            rows = SqlAlchemyContentStore(session).all(registry.get("Listing"))

        assert sorted(type(r).__name__ for r in rows) == ["Listing", "SearchableListing"]

    def test_get_refreshes_identity_map(self, populated, registry, engine):
        with populated() as session:
            page = session.get(Page, 2)

            with engine.begin() as conn:
                conn.exec_driver_sql("UPDATE page SET \"Title\" = 'Renamed' WHERE id = 2")

            assert page.Title == "Live"

            fresh = SqlAlchemyContentStore(session).get(registry.get("Page"), (2,))

        assert fresh is page
        assert page.Title == "Renamed"


class TestGetSession:

    def test_commits_on_success(self, session_factory, monkeypatch):
        monkeypatch.setattr(db_session, "SessionLocal", session_factory)

        with contextmanager(db_session.get_session)() as session:
            session.add(Article(id=9, Title="Saved"))

        with session_factory() as session:
            assert session.get(Article, 9).Title == "Saved"

    def test_rolls_back_on_error(self, session_factory, monkeypatch):
        monkeypatch.setattr(db_session, "SessionLocal", session_factory)

        with pytest.raises(RuntimeError):
            with contextmanager(db_session.get_session)() as session:
                session.add(Article(id=9, Title="Lost"))
                session.flush()
                raise RuntimeError("abort")

        with session_factory() as session:
            assert session.get(Article, 9) is None
