import pytest
from django.core.cache import cache

from documents.services import rate_limit


@pytest.fixture(autouse=True)
def fresh_rate_limits():
    limiter = rate_limit.get_rate_limiter()
    if hasattr(limiter, "reset"):
        limiter.reset()
    cache.clear()
    yield


@pytest.fixture
def staff_user(django_user_model):
    return django_user_model.objects.create_user(username="staff", password="pass")


@pytest.fixture
def api_client(staff_user):
    from rest_framework.test import APIClient

    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client
