import pytest

from iffy.exceptions import GenerationTriggerError, PersistenceError
from iffy.schemas import IffyRecord, IffyStatus
from iffy.services.generation import CeleryGenerationTrigger
from iffy.tasks import stylize_iffy
from iffy.workers import IMAGES_QUEUE

from conftest import FakeRepository, FakeStorage


async def _seed(repository, status=IffyStatus.processing):
    return await repository.create(
        IffyRecord(
            id="iffy-1",
            is_person=True,
            estimated_age=9,
            style_prompt="make this person a cartoon",
            gift_image_url="https://cdn.test/iffy-original/1.png",
            status=status,
        )
    )


@pytest.mark.asyncio
async def test_stylize_completes_record():
    repository = FakeRepository()
    storage = FakeStorage()
    storage.objects["iffy-original/1.png"] = b"original"
    await _seed(repository)
    prompts = []

    def _stylizer(image, prompt):
        prompts.append((image, prompt))
        return b"cartoon"

    record = await stylize_iffy(repository, "iffy-1", storage, stylizer=_stylizer)

    assert record.status == IffyStatus.completed
    assert record.gift_image_url == "https://cdn.test/iffy-generated/iffy-1.png"
    assert storage.objects["iffy-generated/iffy-1.png"] == b"cartoon"
    assert prompts == [(b"original", "make this person a cartoon")]


@pytest.mark.asyncio
async def test_stylize_failure_marks_record_failed():
    repository = FakeRepository()
    storage = FakeStorage()
    storage.objects["iffy-original/1.png"] = b"original"
    await _seed(repository)

    def _stylizer(image, prompt):
        raise RuntimeError("content policy")

    with pytest.raises(RuntimeError):
        await stylize_iffy(repository, "iffy-1", storage, stylizer=_stylizer)

    record = await repository.get("iffy-1")
    assert record.status == IffyStatus.failed
    assert record.is_error is True
    assert "content policy" in record.commentary


@pytest.mark.asyncio
async def test_stylize_skips_terminal_records():
    repository = FakeRepository()
    await _seed(repository, status=IffyStatus.failed)

    def _stylizer(image, prompt):
        raise AssertionError("should not run")

    record = await stylize_iffy(repository, "iffy-1", FakeStorage(), stylizer=_stylizer)
    assert record.status == IffyStatus.failed


@pytest.mark.asyncio
async def test_stylize_unknown_id_is_noop():
    assert await stylize_iffy(FakeRepository(), "missing", FakeStorage()) is None


class FakeTask:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def apply_async(self, **kwargs):
        if self.error:
            raise self.error
        self.calls.append(kwargs)


@pytest.mark.asyncio
async def test_trigger_enqueues_on_images_queue():
    task = FakeTask()
    await CeleryGenerationTrigger(task=task)("iffy-1")
    assert task.calls == [{"args": ("iffy-1",), "queue": IMAGES_QUEUE}]


@pytest.mark.asyncio
async def test_trigger_broker_error_is_wrapped():
    trigger = CeleryGenerationTrigger(task=FakeTask(error=ConnectionError("broker down")))
    with pytest.raises(GenerationTriggerError):
        await trigger("iffy-1")


class BrokenMarkFailedRepository(FakeRepository):
    async def mark_failed(self, iffy_id, commentary):
        raise PersistenceError("database went away")


@pytest.mark.asyncio
async def test_stylize_error_survives_failed_status_update():
    repository = BrokenMarkFailedRepository()
    storage = FakeStorage()
    storage.objects["iffy-original/1.png"] = b"original"
    await _seed(repository)

    def _stylizer(image, prompt):
        raise RuntimeError("content policy")

    with pytest.raises(RuntimeError, match="content policy"):
        await stylize_iffy(repository, "iffy-1", storage, stylizer=_stylizer)
