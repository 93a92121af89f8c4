"""
Reindex Task

Batch maintenance entry point: defines the mappings of every searchable
model, then refreshes the index. Any failure aborts the run.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from .config import settings
from .core.errors import SearchConfigError
from .search.service import SearchService

logger = logging.getLogger("search_sync.reindex")


class ReindexTask:
    title = "Elastic Search Reindex"
    description = "Refreshes the elastic search index"

    def __init__(
        self,
        service: SearchService,
        echo: Callable[[str], None] = print,
    ) -> None:
        self._service = service
        self._echo = echo

    def run(self) -> float:
        """
        Define mappings and refresh the index.

        Returns the elapsed wall-clock time in seconds.
        """
        start_time = time.perf_counter()

        self._echo("Defining the mappings")
        self._service.define()

        self._echo("Refreshing the index")
        count = self._service.refresh()
        logger.info("Reindexed %d documents", count)

        elapsed_time = time.perf_counter() - start_time
        self._echo("#" * 37)
        self._echo(f"Finished in {elapsed_time} seconds")

        return elapsed_time


def main() -> None:
    """
    Console entry point (`search-sync-reindex`).
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from .content.registry import ContentRegistry, import_base
    from .db.session import SessionLocal
    from .search.client import ElasticsearchClient

    if not settings.content_base:
        raise SearchConfigError("CONTENT_BASE is not configured (expected 'module:Base')")

    registry = ContentRegistry(import_base(settings.content_base))

    with ElasticsearchClient() as client:
        service = SearchService(client, registry, session_factory=SessionLocal)
        ReindexTask(service).run()


if __name__ == "__main__":
    main()
