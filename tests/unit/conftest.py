"""Shared fixtures: fake discovery clients and API errors."""
import json
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from pygoo.core.config import PollConfig


@pytest.fixture
def service():
    """Discovery client stand-in; script responses through execute.return_value."""
    return MagicMock()


@pytest.fixture
def http_error():
    """Factory for googleapiclient HttpErrors with a given status."""
    def make(status, message="error"):
        resp = httplib2.Response({"status": status})
        content = json.dumps({"error": {"code": status, "message": message}}).encode("utf-8")
        return HttpError(resp, content)
    return make


@pytest.fixture
def no_sleep():
    with patch("pygoo.utils.polling.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def fast_poll():
    """Poll config whose loops give up after the first wrong status."""
    return PollConfig(
        vm_running_timeout=-1,
        vm_stopping_timeout=-1,
        disk_creation_timeout=-1,
        operation_timeout=-1,
        poll_interval=0,
        disk_ready_interval=0,
    )
