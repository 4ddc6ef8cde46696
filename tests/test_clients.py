import base64
from unittest.mock import MagicMock, patch

import pytest
import requests

from interview_engine.errors import SandboxUnavailableError
from interview_engine.infrastructure.execution import Judge0Client
from interview_engine.infrastructure.llm import VertexRestClient


def http_response(status_code, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    resp.text = text
    return resp


def b64(text):
    return base64.b64encode(text.encode()).decode()


# -- Judge0 ------------------------------------------------------------------

def test_judge0_encodes_request_and_decodes_result():
    client = Judge0Client("key", api_url="https://judge0.example/submissions")
    payload = {"stdout": b64("cba\n"), "stderr": None, "compile_output": None, "time": "0.012"}
    with patch("requests.post", return_value=http_response(200, payload)) as post:
        run = client.run("print(input()[::-1])", 71, "abc")

    body = post.call_args.kwargs["json"]
    assert base64.b64decode(body["stdin"]).decode() == "abc"
    assert body["language_id"] == 71
    assert post.call_args.kwargs["params"] == {"base64_encoded": "true", "wait": "true"}
    assert post.call_args.kwargs["headers"]["X-RapidAPI-Key"] == "key"
    assert run.stdout == "cba\n"
    assert run.time_seconds == pytest.approx(0.012)
    assert run.error == ""


def test_judge0_compile_error_is_reported():
    payload = {"stdout": None, "stderr": None, "compile_output": b64("SyntaxError"), "time": None}
    with patch("requests.post", return_value=http_response(200, payload)):
        run = Judge0Client("key").run("def", 71, "")
    assert run.error == "SyntaxError"
    assert run.time_seconds == 0.0


@pytest.mark.parametrize("status", [401, 429, 503])
def test_judge0_unusable_statuses(status):
    with patch("requests.post", return_value=http_response(status, text="nope")):
        with pytest.raises(SandboxUnavailableError):
            Judge0Client("key").run("code", 71, "")


def test_judge0_connection_failure():
    with patch("requests.post", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(SandboxUnavailableError):
            Judge0Client("key").run("code", 71, "")


def test_judge0_bad_request_is_not_an_outage():
    with patch("requests.post", return_value=http_response(422, text="bad language")):
        with pytest.raises(RuntimeError):
            Judge0Client("key").run("code", 9999, "")


# -- Vertex ------------------------------------------------------------------

def vertex_client():
    client = VertexRestClient(project="demo-project")
    client._token = "cached-token"
    return client


def test_vertex_generate_content():
    payload = {"candidates": [{"content": {"parts": [{"text": '{"score": 90}'}]}}]}
    client = vertex_client()
    with patch("requests.post", return_value=http_response(200, payload)) as post:
        text = client.generate_content("Evaluate this", temperature=0.0, max_output_tokens=256)

    assert text == '{"score": 90}'
    url = post.call_args.args[0]
    assert url.endswith("projects/demo-project/locations/us-central1/publishers/google/models/"
                        "gemini-2.5-flash-lite:generateContent")
    body = post.call_args.kwargs["json"]
    assert body["contents"][0]["parts"][0]["text"] == "Evaluate this"
    assert body["generationConfig"] == {"temperature": 0.0, "maxOutputTokens": 256}
    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer cached-token"


def test_vertex_refreshes_token_once_on_401():
    payload = {"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}
    client = vertex_client()

    def refresh():
        client._token = "fresh-token"

    with patch.object(client, "_refresh_token", side_effect=refresh), \
            patch("requests.post", side_effect=[http_response(401), http_response(200, payload)]) as post:
        assert client.generate_content("hi") == "ok"
    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer fresh-token"


def test_vertex_error_status_raises():
    with patch("requests.post", return_value=http_response(500, text="internal")):
        with pytest.raises(RuntimeError):
            vertex_client().generate_content("hi")


def test_vertex_response_without_text_part_returns_json():
    client = vertex_client()
    assert client._parse_response_text({"candidates": []}) == '{"candidates":[]}'
    assert client._parse_response_text({"text": "plain"}) == "plain"
