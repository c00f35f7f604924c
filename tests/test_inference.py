"""
Tests for the inference client (HTTP mocked)
"""

import base64

import pytest
import requests
from unittest.mock import Mock, patch

from cerveau.exceptions import (
    AuthError,
    ConfigurationError,
    MissingCredentialError,
    QuotaError,
    TransportError,
)
from cerveau.inference import (
    SYSTEM_INSTRUCTION,
    InferenceClient,
    InferenceConfig,
    env_credential,
)

from fakes import make_frame


def gemini_body(text):
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"},
                            "finishReason": "STOP"}]}


def ok_response(body):
    response = Mock()
    response.ok = True
    response.status_code = 200
    response.json.return_value = body
    return response


def error_response(status, body=None, text=""):
    response = Mock()
    response.ok = False
    response.status_code = status
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def gemini_client():
    return InferenceClient(InferenceConfig(provider="gemini", model="gemini-2.5-flash"),
                           credential=lambda: "test-key")


@pytest.fixture
def openai_client():
    return InferenceClient(InferenceConfig(provider="openai", model="gpt-4o-mini"),
                           credential=lambda: "sk-test")


@pytest.fixture
def isolated_config(monkeypatch, tmp_path):
    """Global config reloaded from tmp_path, restored afterwards."""
    from cerveau.config import config

    saved = (config._config, config._env_file, config._file_values)
    monkeypatch.chdir(tmp_path)
    yield config
    config._config, config._env_file, config._file_values = saved


class TestGemini:

    @patch("cerveau.inference.requests.post")
    def test_request_shape(self, mock_post, gemini_client):
        mock_post.return_value = ok_response(gemini_body("RAS"))
        frame = make_frame()

        gemini_client.analyze(frame)

        url = mock_post.call_args[0][0]
        kwargs = mock_post.call_args[1]
        assert url == ("https://generativelanguage.googleapis.com"
                       "/v1beta/models/gemini-2.5-flash:generateContent")
        assert kwargs["headers"]["x-goog-api-key"] == "test-key"
        assert kwargs["timeout"] == 15.0

        payload = kwargs["json"]
        assert payload["systemInstruction"]["parts"][0]["text"] == SYSTEM_INSTRUCTION
        inline = payload["contents"][0]["parts"][0]["inlineData"]
        assert inline["mimeType"] == "image/jpeg"
        assert base64.b64decode(inline["data"]) == frame.data
        assert payload["generationConfig"]["temperature"] == 0.0

    @patch("cerveau.inference.requests.post")
    def test_returns_stripped_text(self, mock_post, gemini_client):
        mock_post.return_value = ok_response(gemini_body("  Mur droit devant !\n"))

        assert gemini_client.analyze(make_frame()) == "Mur droit devant !"

    @patch("cerveau.inference.requests.post")
    def test_joins_parts(self, mock_post, gemini_client):
        body = {"candidates": [{"content": {"parts": [{"text": "Mur droit "}, {"text": "devant !"}]}}]}
        mock_post.return_value = ok_response(body)

        assert gemini_client.analyze(make_frame()) == "Mur droit devant !"

    @patch("cerveau.inference.requests.post")
    def test_empty_answer_is_sentinel(self, mock_post, gemini_client):
        mock_post.return_value = ok_response({"candidates": []})

        assert gemini_client.analyze(make_frame()) == "RAS"

    @patch("cerveau.inference.requests.post")
    def test_custom_endpoint(self, mock_post):
        mock_post.return_value = ok_response(gemini_body("RAS"))
        client = InferenceClient(InferenceConfig(endpoint="http://proxy.local/"),
                                 credential=lambda: "k")

        client.analyze(make_frame())

        assert mock_post.call_args[0][0].startswith("http://proxy.local/v1beta/models/")


class TestOpenAI:

    @patch("cerveau.inference.requests.post")
    def test_request_shape(self, mock_post, openai_client):
        mock_post.return_value = ok_response(
            {"choices": [{"message": {"role": "assistant", "content": "RAS"}}]}
        )

        assert openai_client.analyze(make_frame()) == "RAS"

        url = mock_post.call_args[0][0]
        kwargs = mock_post.call_args[1]
        assert url == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        messages = kwargs["json"]["messages"]
        assert messages[0] == {"role": "system", "content": SYSTEM_INSTRUCTION}
        image_url = messages[1]["content"][0]["image_url"]["url"]
        assert image_url.startswith("data:image/jpeg;base64,")
        assert kwargs["json"]["model"] == "gpt-4o-mini"


class TestErrors:

    @patch("cerveau.inference.requests.post")
    def test_missing_credential_never_hits_network(self, mock_post):
        client = InferenceClient(InferenceConfig(), credential=lambda: None)

        with pytest.raises(MissingCredentialError):
            client.analyze(make_frame())
        mock_post.assert_not_called()

    def test_missing_credential_is_auth_error(self):
        assert issubclass(MissingCredentialError, AuthError)

    @pytest.mark.parametrize("status", [401, 403])
    @patch("cerveau.inference.requests.post")
    def test_auth_status(self, mock_post, status, gemini_client):
        mock_post.return_value = error_response(status, text="denied")

        with pytest.raises(AuthError):
            gemini_client.analyze(make_frame())

    @patch("cerveau.inference.requests.post")
    def test_invalid_key_body(self, mock_post, gemini_client):
        mock_post.return_value = error_response(400, body={
            "error": {
                "code": 400,
                "message": "API key not valid. Please pass a valid API key.",
                "status": "INVALID_ARGUMENT",
                "details": [{"@type": "type.googleapis.com/google.rpc.ErrorInfo",
                             "reason": "API_KEY_INVALID"}],
            }
        })

        with pytest.raises(AuthError) as exc_info:
            gemini_client.analyze(make_frame())
        assert "API key not valid" in str(exc_info.value)

    @patch("cerveau.inference.requests.post")
    def test_quota(self, mock_post, gemini_client):
        mock_post.return_value = error_response(429, text="RESOURCE_EXHAUSTED")

        with pytest.raises(QuotaError):
            gemini_client.analyze(make_frame())

    @patch("cerveau.inference.requests.post")
    def test_server_error(self, mock_post, gemini_client):
        mock_post.return_value = error_response(503, text="unavailable")

        with pytest.raises(TransportError):
            gemini_client.analyze(make_frame())

    @patch("cerveau.inference.requests.post")
    def test_timeout(self, mock_post, gemini_client):
        mock_post.side_effect = requests.exceptions.Timeout()

        with pytest.raises(TransportError):
            gemini_client.analyze(make_frame())

    @patch("cerveau.inference.requests.post")
    def test_connection_error(self, mock_post, gemini_client):
        mock_post.side_effect = requests.exceptions.ConnectionError("offline")

        with pytest.raises(TransportError):
            gemini_client.analyze(make_frame())

    @patch("cerveau.inference.requests.post")
    def test_invalid_json(self, mock_post, gemini_client):
        response = ok_response(None)
        response.json.side_effect = ValueError("bad json")
        mock_post.return_value = response

        with pytest.raises(TransportError):
            gemini_client.analyze(make_frame())

    @patch("cerveau.inference.requests.post")
    def test_unexpected_shape(self, mock_post, gemini_client):
        mock_post.return_value = ok_response({"candidates": "nope"})

        with pytest.raises(TransportError):
            gemini_client.analyze(make_frame())

    @patch("cerveau.inference.requests.post")
    def test_single_attempt(self, mock_post, gemini_client):
        mock_post.return_value = error_response(503)

        with pytest.raises(TransportError):
            gemini_client.analyze(make_frame())
        assert mock_post.call_count == 1

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            InferenceConfig(provider="ollama")


class TestCredentials:

    @patch("cerveau.inference.requests.post")
    def test_credential_read_on_every_call(self, mock_post):
        mock_post.return_value = ok_response(gemini_body("RAS"))
        keys = iter(["first", "second"])
        client = InferenceClient(InferenceConfig(), credential=lambda: next(keys))

        client.analyze(make_frame())
        client.analyze(make_frame())

        sent = [c[1]["headers"]["x-goog-api-key"] for c in mock_post.call_args_list]
        assert sent == ["first", "second"]

    def test_env_credential_order(self, monkeypatch):
        monkeypatch.delenv("CERVEAU_API_KEY", raising=False)
        monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
        accessor = env_credential("gemini")

        assert accessor() == "gemini-key"

        monkeypatch.setenv("CERVEAU_API_KEY", "own-key")
        assert accessor() == "own-key"

    def test_env_credential_falls_back_to_dotenv(self, monkeypatch, tmp_path, isolated_config):
        for name in ("CERVEAU_API_KEY", "OPENAI_API_KEY"):
            monkeypatch.delenv(name, raising=False)
        (tmp_path / ".env").write_text("CERVEAU_API_KEY=from-dotenv\n")
        isolated_config.reload()

        assert env_credential("openai")() == "from-dotenv"

    def test_env_credential_missing(self, monkeypatch, isolated_config):
        for name in ("CERVEAU_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"):
            monkeypatch.delenv(name, raising=False)
        isolated_config.reload()

        assert env_credential("gemini")() is None

    @patch("cerveau.inference.requests.post")
    def test_removed_env_key_is_not_reused(self, mock_post, monkeypatch, isolated_config):
        for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("CERVEAU_API_KEY", "old-key")
        isolated_config.reload()
        assert isolated_config.get("CERVEAU_API_KEY") == "old-key"

        monkeypatch.delenv("CERVEAU_API_KEY")
        client = InferenceClient(InferenceConfig(provider="gemini", model="gemini-2.5-flash"))

        with pytest.raises(MissingCredentialError):
            client.analyze(make_frame())
        mock_post.assert_not_called()


class TestMetrics:

    @patch("cerveau.inference.requests.post")
    def test_counts_calls(self, mock_post, gemini_client):
        mock_post.side_effect = [
            ok_response(gemini_body("RAS")),
            error_response(500),
        ]

        gemini_client.analyze(make_frame())
        with pytest.raises(TransportError):
            gemini_client.analyze(make_frame())

        stats = gemini_client.get_metrics()
        assert stats["total_calls"] == 2
        assert stats["successful"] == 1
        assert stats["failed"] == 1
        assert stats["success_rate"] == "50.0%"
