from celery import Celery
from .config import settings

IMAGES_QUEUE = "images"

def _route_task(name, args, kwargs, options, task=None):
    """
    Route tasks to dedicated queues.

    Keeps `.delay(...)` and `.apply_async(...)` call sites on the same queue.
    """
    if name == "iffy.tasks.stylize_iffy_task":
        return {"queue": IMAGES_QUEUE}

    return None

celery_app = Celery(
    "iffy",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["iffy.tasks"]
)

celery_app.conf.update(
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    broker_transport_options={"visibility_timeout": 3600},
    task_routes=(_route_task,),
)
