"""
Search Service Tests

Exercises SearchService and ElasticsearchClient against an
httpx.MockTransport standing in for the cluster.
"""

import base64
import json
from datetime import datetime

import httpx
import pytest

from search_sync.core.errors import SearchServiceError
from search_sync.db.models import StoredFile
from search_sync.search.client import ElasticsearchClient
from search_sync.search.service import SearchService

from content_models import Article, Event, Listing, Page, Person, Report, SearchableListing, Slugged


class FakeCluster:
    """Records requests and answers them like a minimal Elasticsearch."""

    def __init__(self, existing=(), bulk_errors=False, delete_status=200):
        self.existing = set(existing)
        self.bulk_errors = bulk_errors
        self.delete_status = delete_status
        self.requests = []
        self.raw_paths = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path, request.content))
        self.raw_paths.append(request.url.raw_path.decode("ascii"))

        if request.method == "HEAD":
            return httpx.Response(200 if path.strip("/") in self.existing else 404)

        if request.method == "PUT" and path.count("/") == 1:
            self.existing.add(path.strip("/"))
            return httpx.Response(200, json={"acknowledged": True})

        if request.method == "DELETE":
            return httpx.Response(self.delete_status, json={"result": "deleted"})

        if path == "/_bulk":
            items = [{"index": {"status": 400, "error": {"type": "mapper_parsing_exception"}}}]
            if not self.bulk_errors:
                items = [{"index": {"status": 201}}]
            return httpx.Response(200, json={"errors": self.bulk_errors, "items": items})

        return httpx.Response(200, json={"acknowledged": True})

    def paths(self, method=None):
        return [path for m, path, _ in self.requests if method is None or m == method]

    def bulk_actions(self):
        actions = []
        for method, path, content in self.requests:
            if path == "/_bulk":
                actions.extend(json.loads(line) for line in content.decode("utf-8").splitlines())
        return actions


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def make_service(registry, schema_builder, synthesizer, session_factory):
    clients = []

    def _make(cluster, with_sessions=True):
        client = ElasticsearchClient(
            base_url="http://es.test:9200",
            transport=httpx.MockTransport(cluster),
        )
        clients.append(client)
        return SearchService(
            client,
            registry,
            session_factory=session_factory if with_sessions else None,
            index_prefix="test",
            bulk_size=2,
            schema_builder=schema_builder,
            synthesizer=synthesizer,
        )

    yield _make

    for client in clients:
        client.close()


class TestDefine:

    def test_creates_missing_index_then_mapping(self, make_service, cluster, schema_builder, registry):
        make_service(cluster).define()

        requests = [(m, p) for m, p, _ in cluster.requests if p.startswith("/test-article")]
        assert requests == [
            ("HEAD", "/test-article"),
            ("PUT", "/test-article"),
            ("PUT", "/test-article/_mapping"),
        ]

        body = next(c for m, p, c in cluster.requests if p == "/test-article/_mapping")
        assert json.loads(body) == {"properties": schema_builder.mapping(registry.get("Article"))}

    def test_existing_index_is_not_recreated(self, make_service, registry):
        names = {f"test-{m.type_name.lower()}" for m in registry.searchable_models()}
        cluster = FakeCluster(existing=names)

        make_service(cluster).define()

        assert cluster.paths("HEAD")
        assert all(path.endswith("/_mapping") for path in cluster.paths("PUT"))

    def test_every_searchable_model_gets_an_index(self, make_service, cluster, registry):
        make_service(cluster).define()

        mapped = {path.split("/")[1] for path in cluster.paths("PUT") if path.endswith("/_mapping")}
        assert mapped == {f"test-{m.type_name.lower()}" for m in registry.searchable_models()}
        assert "test-category" not in mapped
        assert "test-listing" not in mapped

    def test_is_repeatable(self, make_service, cluster):
        service = make_service(cluster)
        service.define()
        service.define()

        assert cluster.paths("PUT").count("/test-article") == 1
        assert cluster.paths("PUT").count("/test-article/_mapping") == 2


class TestDocuments:

    def test_index_puts_document(self, make_service, cluster):
        make_service(cluster).index(Article(id=5, Title="Hello", Author=Person(id=1, Name="Jo")))

        method, path, content = cluster.requests[-1]
        assert (method, path) == ("PUT", "/test-article/_doc/5")
        assert json.loads(content) == {"SS_Published": True, "Title": "Hello", "Author_Name": "Jo"}

    def test_index_embeds_file_references(self, make_service, cluster, tmp_path):
        upload = tmp_path / "report.pdf"
        upload.write_bytes(b"report bytes")

        make_service(cluster).index(Report(id=2, Title="R", Document=StoredFile(upload)))

        source = json.loads(cluster.requests[-1][2])
        assert source["Document"] == base64.b64encode(b"report bytes").decode("ascii")

    def test_unreadable_file_raises(self, make_service, cluster, tmp_path):
        service = make_service(cluster)
        document = service.document_for(Article(id=1, Title="A"))
        document.add_file("Document", str(tmp_path / "missing.bin"))

        with pytest.raises(SearchServiceError):
            service._source(document)

    def test_dates_are_serialized(self, make_service, cluster):
        page = Page(id=1, Title="P", published=True, show_in_search=True, LastEdited=datetime(2023, 5, 6, 7, 8, 9))

        make_service(cluster).index(page)

        source = json.loads(cluster.requests[-1][2])
        assert source["LastEdited"] == "2023-05-06T07:08:09"

    def test_remove_deletes_document(self, make_service, cluster):
        make_service(cluster).remove(Article(id=5, Title="Hello"))

        assert cluster.requests[-1][:2] == ("DELETE", "/test-article/_doc/5")

    def test_document_id_is_one_path_segment(self, make_service, cluster):
        service = make_service(cluster)

        service.index(Slugged(slug="a#b", Title="Hash"))
        service.remove(Slugged(slug="c/d", Title="Slash"))

        assert cluster.raw_paths == ["/test-slugged/_doc/a%23b", "/test-slugged/_doc/c%2Fd"]

    def test_remove_missing_document_is_tolerated(self, make_service):
        cluster = FakeCluster(delete_status=404)

        make_service(cluster).remove(Article(id=5, Title="Hello"))

        assert cluster.paths("DELETE") == ["/test-article/_doc/5"]

    def test_server_error_raises(self, make_service):
        cluster = FakeCluster(delete_status=500)

        with pytest.raises(SearchServiceError):
            make_service(cluster).remove(Article(id=5, Title="Hello"))

    def test_transport_error_raises(self, make_service):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SearchServiceError):
            make_service(unreachable).index(Article(id=1, Title="A"))


class TestBulk:

    def test_index_is_buffered(self, make_service, cluster):
        service = make_service(cluster)

        with service.bulk():
            service.index(Article(id=1, Title="A"))
            assert cluster.requests == []

        actions = cluster.bulk_actions()
        assert actions[0] == {"index": {"_index": "test-article", "_id": "1"}}
        assert actions[1]["Title"] == "A"

    def test_flushes_every_bulk_size_documents(self, make_service, cluster):
        service = make_service(cluster)

        with service.bulk():
            for i in range(1, 6):
                service.index(Article(id=i, Title=f"A{i}"))

        assert cluster.paths("POST") == ["/_bulk"] * 3
        ids = [a["index"]["_id"] for a in cluster.bulk_actions() if "index" in a]
        assert ids == ["1", "2", "3", "4", "5"]

    def test_item_errors_raise(self, make_service):
        cluster = FakeCluster(bulk_errors=True)
        service = make_service(cluster)

        with pytest.raises(SearchServiceError):
            with service.bulk():
                service.index(Article(id=1, Title="A"))

    def test_buffer_discarded_on_error(self, make_service, cluster):
        service = make_service(cluster)

        with pytest.raises(RuntimeError):
            with service.bulk():
                service.index(Article(id=1, Title="A"))
                raise RuntimeError("abort")

        assert cluster.requests == []

        service.index(Article(id=2, Title="B"))
        assert cluster.paths() == ["/test-article/_doc/2"]


class TestRefresh:

    def test_pushes_visible_instances(self, make_service, cluster, session_factory, registry):
        with session_factory() as session:
            session.add_all([
                Article(id=1, Title="A"),
                Page(id=2, Title="Shown", published=True, show_in_search=True),
                Page(id=3, Title="Hidden", published=True, show_in_search=False),
                Listing(id=4, Heading="plain"),
                SearchableListing(id=5, Heading="searchable"),
                Event(id=6, Title="Shown event", show_in_search=True),
                Event(id=7, Title="Hidden event", show_in_search=False),
            ])
            session.commit()

        service = make_service(cluster)
        service.define()
        cluster.requests.clear()

        count = service.refresh()

        assert count == 4
        sent = {(a["index"]["_index"], a["index"]["_id"]) for a in cluster.bulk_actions() if "index" in a}
        assert sent == {
            ("test-article", "1"),
            ("test-page", "2"),
            ("test-searchablelisting", "5"),
            ("test-event", "6"),
        }

        refreshed = [p for p in cluster.paths("POST") if p.endswith("/_refresh")]
        assert len(refreshed) == len(registry.searchable_models())

    def test_hidden_event_is_not_pushed(self, make_service, cluster, session_factory):
        with session_factory() as session:
            session.add(Event(id=1, Title="Hidden", show_in_search=False))
            session.commit()

        service = make_service(cluster)
        service.define()
        cluster.requests.clear()

        assert service.refresh() == 0
        assert "/_bulk" not in cluster.paths()

    def test_refresh_skips_missing_indexes(self, make_service, cluster):
        count = make_service(cluster).refresh()

        assert count == 0
        assert not [p for p in cluster.paths() if p.endswith("/_refresh")]

    def test_requires_session_factory(self, make_service, cluster):
        with pytest.raises(SearchServiceError):
            make_service(cluster, with_sessions=False).refresh()
