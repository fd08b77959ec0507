"""Shared fakes for application-layer tests."""

import asyncio
import time

import pytest

from modimport.application.catalog_service import CatalogSearchService
from modimport.application.errors import ExtractionFailedError, PlacementFailedError
from modimport.application.events import JobEventBus
from modimport.application.jobs import JobStore
from modimport.application.pipeline import ImportPipeline
from modimport.application.ports import ExtractedSource
from modimport.application.resolution import ResolutionPipeline
from modimport.application.review import ReviewQueue
from modimport.data.catalog import CatalogEntry, CatalogUnavailableError
from modimport.data.catalog_store import CatalogStore
from modimport.data.normalizer import display_name_from_path

SCOPE = "gimi"

CATALOG = [
    CatalogEntry(name="Diluc", category="Character"),
    CatalogEntry(name="Raiden Shogun", category="Character", aliases=("Ei", "Baal")),
    CatalogEntry(name="Ayaka", category="Character"),
    CatalogEntry(name="Skyward Harp", category="Weapon"),
]


class FakeFetcher:
    def __init__(self, entries=None, error=None):
        self.entries = list(CATALOG if entries is None else entries)
        self.error = error
        self.gate = None
        self.calls = 0

    async def fetch(self, scope):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise CatalogUnavailableError(self.error, scope=scope)
        return list(self.entries)


class FakeExtractor:
    def __init__(self):
        self.calls = []
        self.errors = {}
        self.gates = {}
        self.hooks = {}

    async def extract(self, job_id, source_path):
        self.calls.append(source_path)
        gate = self.gates.get(source_path)
        if gate is not None:
            await gate.wait()
        hook = self.hooks.get(source_path)
        if hook is not None:
            await hook(job_id)
        error = self.errors.get(source_path)
        if isinstance(error, Exception):
            raise error
        if error is not None:
            raise ExtractionFailedError(error)
        return ExtractedSource(display_name=display_name_from_path(source_path), staging_path=f"/staging/{job_id}")


class FakePlacer:
    def __init__(self):
        self.calls = []
        self.error = None

    async def place(self, job_id, staging_path, category, entry_name, display_name):
        self.calls.append((category, entry_name, display_name))
        if self.error is not None:
            raise PlacementFailedError(self.error)
        return f"/mods/{category}/{entry_name}/DISABLED {display_name}"


class FakeDuplicates:
    def __init__(self):
        self.placed = set()
        self.error = None

    def is_duplicate(self, name, category):
        if self.error is not None:
            raise self.error
        return (name.casefold(), category.casefold()) in self.placed


class ImportEnv:
    """Pipeline wired to in-memory fakes."""

    def __init__(self, threshold=0.25, fetch_error=None):
        self.events = JobEventBus()
        self.store = JobStore(events=self.events)
        self.fetcher = FakeFetcher(error=fetch_error)
        self.catalogs = CatalogStore(self.fetcher, ttl_s=0)
        self.extractor = FakeExtractor()
        self.placer = FakePlacer()
        self.duplicates = FakeDuplicates()
        self.pipeline = ImportPipeline(
            store=self.store,
            catalogs=self.catalogs,
            extractor=self.extractor,
            placer=self.placer,
            duplicates=self.duplicates,
            resolver=ResolutionPipeline(threshold=threshold),
            default_scope=SCOPE,
            max_concurrent=2,
        )
        self.search = CatalogSearchService(
            catalogs=self.catalogs,
            search_threshold=0.2,
            suggestion_threshold=0.25,
            default_scope=SCOPE,
        )
        self.review = ReviewQueue(pipeline=self.pipeline, search=self.search)

    async def load_catalog(self):
        return await self.catalogs.load(SCOPE)

    async def wait_for_status(self, job_id, *statuses, timeout=2.0):
        deadline = time.monotonic() + timeout
        while True:
            job = self.store.get(job_id)
            if job.status in statuses:
                return job
            if time.monotonic() > deadline:
                raise AssertionError(f"job {job_id} stuck in {job.status}, wanted {statuses}")
            await asyncio.sleep(0.01)


@pytest.fixture
def env():
    return ImportEnv()


@pytest.fixture
def make_env():
    return ImportEnv
