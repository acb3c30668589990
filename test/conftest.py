"""
Shared pytest fixtures for LlamaDock tests.
Provides a scripted inference engine, temporary configuration storage and a
live request server bound to an ephemeral port.
"""

import socket
import threading
from pathlib import Path

import pytest

from backend.dependencies import ServerResources
from backend.server import RequestServer
from src.core.configurations import ConfigurationStore, ModelConfiguration
from src.core.engine import STATUS_OK
from src.core.events import EventBus
from src.core.session import ModelSessionManager
from src.utilities.config import LlamaDockConfig


class FakeEngine:
    """InferenceEngine double that records every call and can hold inference open."""

    def __init__(self, reply: str = "Hello from the model"):
        self.reply = reply
        self.fetch_status = STATUS_OK
        self.init_status = STATUS_OK
        self.fetch_calls = []
        self.init_calls = []
        self.init_penalty_last_n = []
        self.sampling_calls = []
        self.prompts = []
        self.release_count = 0
        # When set, infer() blocks until the event is set
        self.gate: threading.Event | None = None
        self.inferring = threading.Event()

    def fetch_model(self, locator, destination):
        self.fetch_calls.append((locator, destination))
        if self.fetch_status == STATUS_OK:
            Path(destination).parent.mkdir(parents=True, exist_ok=True)
            Path(destination).write_bytes(b"GGUF")
        return self.fetch_status

    def initialize(self, path, n_ctx=2048, n_threads=2, n_batch=16, penalty_last_n=64):
        self.init_calls.append((path, n_ctx, n_threads, n_batch))
        self.init_penalty_last_n.append(penalty_last_n)
        return self.init_status

    def configure_sampling(self, params):
        self.sampling_calls.append(params)

    def infer(self, prompt):
        self.prompts.append(prompt)
        self.inferring.set()
        if self.gate is not None:
            self.gate.wait(timeout=10)
        return self.reply

    def release(self):
        self.release_count += 1


@pytest.fixture
def test_config(tmp_path):
    """Configuration rooted in a temporary directory, serving on an ephemeral port."""
    config = LlamaDockConfig()
    config.storage.config_directory = str(tmp_path / "configs")
    config.storage.models_directory = str(tmp_path / "models")
    config.server.port = 0
    config.server.max_workers = 8
    config.server.client_timeout = 5.0
    config.server.preload_default = False
    config.logging.log_to_console = False
    return config


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def store(test_config):
    return ConfigurationStore(test_config.storage.config_directory, config=test_config)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def session(fake_engine, store, test_config, events):
    return ModelSessionManager(
        engine=fake_engine,
        store=store,
        models_directory=test_config.storage.models_directory,
        events=events,
        config=test_config,
    )


@pytest.fixture
def resources(test_config, store, session, events):
    return ServerResources(config=test_config, store=store, session=session, events=events)


@pytest.fixture
def running_server(resources):
    """A started RequestServer on an ephemeral port."""
    server = RequestServer(resources, host="127.0.0.1", port=0, preload=False)
    server.start()
    yield server
    server.stop()


@pytest.fixture
def base_url(running_server):
    return f"http://127.0.0.1:{running_server.port}"


@pytest.fixture
def send_raw(running_server):
    """Send raw bytes to the server and return everything it answers."""

    def _send(data: bytes, timeout: float = 5.0) -> bytes:
        with socket.create_connection(("127.0.0.1", running_server.port), timeout=timeout) as sock:
            sock.sendall(data)
            chunks = []
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)

    return _send


@pytest.fixture
def other_configuration():
    """A second configuration pointing at a different model file."""
    return ModelConfiguration(
        name="fast",
        model_url="https://example.com/models/fast-model.Q4_0.gguf?download=true",
        n_ctx=1024,
        temp=0.2,
    )
