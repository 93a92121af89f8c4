import pytest
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from search_sync.content.registry import ContentRegistry
from search_sync.content.schema import SchemaBuilder
from search_sync.content.document import DocumentSynthesizer
from search_sync.search.service import SearchService

from content_models import Base


@pytest.fixture
def registry():
    return ContentRegistry(Base)


@pytest.fixture
def schema_builder(registry):
    return SchemaBuilder(registry, published_field="SS_Published", separator="_")


@pytest.fixture
def synthesizer(registry):
    return DocumentSynthesizer(registry, published_field="SS_Published", separator="_")


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'content.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def mock_service():
    return MagicMock(spec=SearchService)
