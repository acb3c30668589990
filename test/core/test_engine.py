"""
Tests for the llama.cpp engine binding (src.core.engine).
The native library and the network are mocked throughout.
"""

from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from src.core.configurations import ModelConfiguration
from src.core.engine import STATUS_OK, LlamaCppEngine


@pytest.fixture
def engine(test_config):
    return LlamaCppEngine(config=test_config)


@pytest.fixture
def mock_llama():
    """Mock llama_cpp.Llama class returning a mock model instance."""
    llama_class = Mock()
    llama_class.return_value.create_completion.return_value = {"choices": [{"text": "generated text"}]}
    return llama_class


def _streaming_response(chunks, content_length=None):
    response = Mock()
    response.headers = {"Content-Length": str(content_length)} if content_length is not None else {}
    response.iter_content.return_value = chunks
    response.raise_for_status.return_value = None
    context = MagicMock()
    context.__enter__.return_value = response
    return context


class TestInitialize:
    """Test model initialization."""

    def test_initialize_success(self, engine, mock_llama):
        with patch.object(LlamaCppEngine, "_load_llama_class", return_value=mock_llama):
            status = engine.initialize("/models/m.gguf", n_ctx=1024, n_threads=4, n_batch=32)

        assert status == STATUS_OK
        assert engine.is_initialized
        kwargs = mock_llama.call_args.kwargs
        assert kwargs["model_path"] == "/models/m.gguf"
        assert kwargs["n_ctx"] == 1024
        assert kwargs["n_threads"] == 4
        assert kwargs["n_batch"] == 32

    def test_initialize_passes_penalty_window(self, engine, mock_llama):
        with patch.object(LlamaCppEngine, "_load_llama_class", return_value=mock_llama):
            engine.initialize("/models/m.gguf", penalty_last_n=256)

        assert mock_llama.call_args.kwargs["last_n_tokens_size"] == 256

    def test_initialize_without_library(self, engine):
        with patch.object(LlamaCppEngine, "_load_llama_class", side_effect=ImportError("no llama_cpp")):
            status = engine.initialize("/models/m.gguf")

        assert status.startswith("error:")
        assert not engine.is_initialized

    def test_initialize_bad_model_file(self, engine, mock_llama):
        mock_llama.side_effect = ValueError("Failed to load model from file")

        with patch.object(LlamaCppEngine, "_load_llama_class", return_value=mock_llama):
            status = engine.initialize("/models/broken.gguf")

        assert status == "error: Failed to load model from file"
        assert not engine.is_initialized

    def test_reinitialize_releases_previous_model(self, engine, mock_llama):
        with patch.object(LlamaCppEngine, "_load_llama_class", return_value=mock_llama):
            engine.initialize("/models/a.gguf")
            first = engine._model
            engine.initialize("/models/b.gguf")

        first.close.assert_called_once()


class TestInfer:
    """Test generation."""

    def test_infer_without_model(self, engine):
        assert engine.infer("Hi") == "Model not loaded"

    def test_infer_applies_sampling(self, engine, mock_llama, test_config):
        """Test that configured sampling parameters reach create_completion."""
        with patch.object(LlamaCppEngine, "_load_llama_class", return_value=mock_llama):
            engine.initialize("/models/m.gguf")
        engine.configure_sampling(ModelConfiguration(temp=0.2, top_k=10, top_p=0.5).sampling_parameters())

        result = engine.infer("Hello")

        assert result == "generated text"
        model = mock_llama.return_value
        args, kwargs = model.create_completion.call_args
        assert args == ("Hello",)
        assert kwargs["temperature"] == 0.2
        assert kwargs["top_k"] == 10
        assert kwargs["top_p"] == 0.5
        assert kwargs["max_tokens"] == test_config.engine.max_tokens

    def test_sampling_updates_penalty_window_of_loaded_model(self, engine, mock_llama):
        with patch.object(LlamaCppEngine, "_load_llama_class", return_value=mock_llama):
            engine.initialize("/models/m.gguf")

        engine.configure_sampling(ModelConfiguration(penalty_last_n=128).sampling_parameters())

        assert mock_llama.return_value.last_n_tokens_size == 128

    def test_infer_error_becomes_text(self, engine, mock_llama):
        mock_llama.return_value.create_completion.side_effect = RuntimeError("decode failed")
        with patch.object(LlamaCppEngine, "_load_llama_class", return_value=mock_llama):
            engine.initialize("/models/m.gguf")

        assert engine.infer("Hello") == "[Error: decode failed]"

    def test_release(self, engine, mock_llama):
        with patch.object(LlamaCppEngine, "_load_llama_class", return_value=mock_llama):
            engine.initialize("/models/m.gguf")

        engine.release()
        engine.release()

        mock_llama.return_value.close.assert_called_once()
        assert not engine.is_initialized


class TestFetchModel:
    """Test model downloads."""

    @patch("src.core.engine.requests.get")
    def test_download_success(self, mock_get, engine, tmp_path):
        mock_get.return_value = _streaming_response([b"abc", b"", b"def"], content_length=6)
        destination = tmp_path / "models" / "m.gguf"

        status = engine.fetch_model("https://example.com/m.gguf", str(destination))

        assert status == STATUS_OK
        assert destination.read_bytes() == b"abcdef"
        assert not (tmp_path / "models" / "m.gguf.part").exists()
        assert mock_get.call_args.kwargs["stream"] is True

    @patch("src.core.engine.requests.get")
    def test_download_reports_progress(self, mock_get, test_config, tmp_path):
        progress = []
        engine = LlamaCppEngine(config=test_config, progress_callback=progress.append)
        mock_get.return_value = _streaming_response([b"ab", b"cd"], content_length=4)

        engine.fetch_model("https://example.com/m.gguf", str(tmp_path / "m.gguf"))

        assert progress == [50, 100]

    @patch("src.core.engine.requests.get")
    def test_download_http_error(self, mock_get, engine, tmp_path):
        context = _streaming_response([])
        context.__enter__.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("404 Not Found")
        mock_get.return_value = context
        destination = tmp_path / "m.gguf"

        status = engine.fetch_model("https://example.com/m.gguf", str(destination))

        assert status == "error: 404 Not Found"
        assert not destination.exists()

    @patch("src.core.engine.requests.get")
    def test_download_connection_error(self, mock_get, engine, tmp_path):
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")

        status = engine.fetch_model("https://example.com/m.gguf", str(tmp_path / "m.gguf"))

        assert status.startswith("error:")

    @patch("src.core.engine.requests.get")
    def test_empty_download(self, mock_get, engine, tmp_path):
        mock_get.return_value = _streaming_response([])
        destination = tmp_path / "m.gguf"

        status = engine.fetch_model("https://example.com/m.gguf", str(destination))

        assert status == "error: empty download"
        assert not destination.exists()
        assert not (tmp_path / "m.gguf.part").exists()
