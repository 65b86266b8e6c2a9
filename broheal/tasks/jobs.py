from broheal.tasks.celery_app import celery
from broheal.tasks import worker_jobs


@celery.task(name="broheal.tasks.jobs.process_notification_queue")
def process_notification_queue(limit: int = 50):
    return worker_jobs.process_notification_queue(limit=limit)
