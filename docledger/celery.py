# docledger/celery.py
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'docledger.settings')

app = Celery('docledger')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

app.conf.beat_schedule = {
    'purge-expired-verify-sessions-every-10-minutes': {
        'task': 'documents.tasks.purge_expired_verify_sessions',
        'schedule': 600.0,
    },
}
