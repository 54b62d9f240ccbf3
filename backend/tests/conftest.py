from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from iffy.exceptions import PersistenceError
from iffy.profiles import GENERAL
from iffy.schemas import AnalysisResult, CatalogEntry, IffyRecord, IffyStatus, RecommendationResult


DONATION = "CJ나눔재단 기부"


class FakeCatalog:
    def __init__(self, entries: List[CatalogEntry], error: Exception = None):
        self.entries = entries
        self.error = error
        self.calls = 0

    async def get(self) -> List[CatalogEntry]:
        self.calls += 1
        if self.error:
            raise self.error
        return self.entries


class FakeStorage:
    def __init__(self, error: Exception = None):
        self.error = error
        self.uploads = []
        self.objects: Dict[str, bytes] = {}

    def upload_original(self, image_bytes: bytes, content_type: str) -> str:
        if self.error:
            raise self.error
        self.uploads.append((image_bytes, content_type))
        return f"https://cdn.test/iffy-original/{len(self.uploads)}.png"

    def key_from_url(self, url: str) -> str:
        return url.split("https://cdn.test/", 1)[1]

    def read(self, key: str) -> bytes:
        return self.objects[key]

    def put_png(self, data: bytes, key: str) -> str:
        self.objects[key] = data
        return f"https://cdn.test/{key}"


class FakeRepository:
    """In-memory record store with the same terminal-status rule as IffyRepository."""

    def __init__(self, create_error: Exception = None):
        self.records: Dict[str, IffyRecord] = {}
        self.create_error = create_error

    async def create(self, record: IffyRecord) -> IffyRecord:
        if self.create_error:
            raise self.create_error
        now = datetime.now(timezone.utc)
        saved = record.model_copy(update={"created_at": now, "updated_at": now})
        self.records[saved.id] = saved
        return saved

    async def get(self, iffy_id: str) -> Optional[IffyRecord]:
        return self.records.get(iffy_id)

    async def count(self) -> int:
        return len(self.records)

    async def _finish(self, iffy_id: str, status: IffyStatus, **fields) -> Optional[IffyRecord]:
        record = self.records.get(iffy_id)
        if record is None:
            return None
        if record.status in (IffyStatus.completed, IffyStatus.failed):
            return record
        record = record.model_copy(update={"status": status, **fields})
        self.records[iffy_id] = record
        return record

    async def mark_completed(self, iffy_id: str, image_url: str) -> Optional[IffyRecord]:
        return await self._finish(iffy_id, IffyStatus.completed, gift_image_url=image_url)

    async def mark_failed(self, iffy_id: str, commentary: str) -> Optional[IffyRecord]:
        return await self._finish(iffy_id, IffyStatus.failed, is_error=True, commentary=commentary)


class RecordingTrigger:
    def __init__(self, error: Exception = None):
        self.error = error
        self.calls: List[str] = []

    async def __call__(self, iffy_id: str) -> None:
        self.calls.append(iffy_id)
        if self.error:
            raise self.error


def fixed_analyzer(result: AnalysisResult = None, error: Exception = None):
    calls = []

    async def _analyze(image_bytes: bytes, content_type: str) -> AnalysisResult:
        calls.append((image_bytes, content_type))
        if error:
            raise error
        return result

    _analyze.calls = calls
    return _analyze


def fixed_recommender(name: str = None, error: Exception = None):
    prompts = []

    async def _recommend(prompt: str) -> RecommendationResult:
        prompts.append(prompt)
        if error:
            raise error
        return RecommendationResult(
            selected_product_name=name,
            reason="Perfect for a curious mind.",
            humor_line="Still a kid at heart!",
        )

    _recommend.prompts = prompts
    return _recommend


def entry(name: str, bracket: str, brand: str = "Brand", link: str = "", image: str = "") -> CatalogEntry:
    return CatalogEntry(
        brand=brand,
        name=name,
        description=f"{name} description",
        age_bracket=bracket,
        purchase_link=link or f"https://shop.test/{name.replace(' ', '-')}",
        image_url=image,
    )


@pytest.fixture
def profile():
    return GENERAL


@pytest.fixture
def catalog_entries() -> List[CatalogEntry]:
    return [
        entry(DONATION, "", brand="", link="https://donate.test"),
        entry("Lego City", "21-30", brand="Lego"),
        entry("Switch Lite", "21-30", brand="Nintendo"),
        entry("Kindle", "21-30", brand="Amazon"),
        entry("Crayons", "0-5", brand="Crayola"),
    ]


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def persistence_error() -> PersistenceError:
    return PersistenceError("connection refused")
