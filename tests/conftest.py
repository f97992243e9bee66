import os
import tempfile

# Configure before anything imports converter.config
os.environ["TMP_DIR"] = tempfile.mkdtemp(prefix="converter-tests-")
os.environ["REDIS_URL"] = ""
os.environ["AWS_S3_BUCKET"] = ""
os.environ["S3_BUCKET"] = ""
os.environ["VIDEO_INFO_DELAY_SECS"] = "0"
os.environ["LOOKUP_DELAY_SECS"] = "0"
os.environ["CONVERT_DELAY_SECS"] = "0"
# Long enough that no background tick lands during a request-level test
os.environ["SIMULATOR_TICK_SECS"] = "3600"

import pytest
from fastapi.testclient import TestClient

from converter.main import create_app
from converter.models import JobDescriptor, JobFormat
from converter.registry import JobRegistry
from converter.simulator import ProgressSimulator
from converter.storage import LocalFileStore


class RecordingSimulator(ProgressSimulator):
    """Simulator that records scheduling calls instead of creating tasks."""

    def __init__(self, registry, **kwargs):
        super().__init__(registry, **kwargs)
        self.tracked = set()
        self.calls = []

    def track(self, job_id):
        self.calls.append(("track", job_id))
        self.tracked.add(job_id)

    def untrack(self, job_id):
        self.calls.append(("untrack", job_id))
        self.tracked.discard(job_id)


@pytest.fixture
def descriptor():
    return JobDescriptor(title="How to Build Amazing Web Applications", format=JobFormat.AUDIO, quality="320")


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def simulator(registry):
    return RecordingSimulator(registry)


@pytest.fixture
def file_store(tmp_path):
    return LocalFileStore(tmp_path / "files")


@pytest.fixture
def app(file_store):
    return create_app(registry=JobRegistry(), file_store=file_store)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
