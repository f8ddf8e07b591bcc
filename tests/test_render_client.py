"""Tests for the ComfyUI render provider"""

import json
from unittest.mock import Mock, patch

import pytest
import requests

from errors import RenderFailed
from render_client import DEFAULT_MAPPING, WORKFLOW_DIR, RenderClient

BASE_URL = "http://comfy:8188"
OUTPUTS = {
    "8": {"images": [{"filename": "render_view_00001_.png", "subfolder": "", "type": "output"}]}
}


def json_response(payload, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = json.dumps(payload)
    return response


def fake_post(url, **kwargs):
    if url.endswith("/upload/image"):
        return json_response({"name": "render_input_abc.png", "subfolder": "", "type": "input"})
    if url.endswith("/prompt"):
        return json_response({"prompt_id": "prompt-1"})
    raise AssertionError(f"unexpected POST {url}")


@pytest.fixture
def client():
    return RenderClient(BASE_URL, model="sd_xl_base_1.0.safetensors", max_attempts=3, poll_interval=0)


class TestRenderWorkflow:
    def test_workflow_template_has_mapped_nodes(self):
        with open(WORKFLOW_DIR / "render_view.json", "r", encoding="utf-8") as f:
            workflow = json.load(f)
        for node_id, input_name in DEFAULT_MAPPING.values():
            assert input_name in workflow[node_id]["inputs"]

    def test_render_returns_view_url(self, client, png_bytes):
        history = json_response({"prompt-1": {"outputs": OUTPUTS}})
        with patch("render_client.requests.post", side_effect=fake_post) as mock_post, \
                patch("render_client.requests.get", return_value=history):
            url = client.render(png_bytes, "image/png")

        assert url == f"{BASE_URL}/view?filename=render_view_00001_.png&subfolder=&type=output"

        upload_call, prompt_call = mock_post.call_args_list
        filename, blob, mime = upload_call.kwargs["files"]["image"]
        assert filename.endswith(".png")
        assert blob == png_bytes
        assert mime == "image/png"

        workflow = prompt_call.kwargs["json"]["prompt"]
        assert workflow["2"]["inputs"]["image"] == "render_input_abc.png"
        assert workflow["1"]["inputs"]["ckpt_name"] == "sd_xl_base_1.0.safetensors"

    def test_render_polls_until_complete(self, client, png_bytes):
        pending = json_response({})
        done = json_response({"prompt-1": {"outputs": OUTPUTS}})
        with patch("render_client.requests.post", side_effect=fake_post), \
                patch("render_client.requests.get", side_effect=[pending, json_response({}, 500), done]) as mock_get:
            client.render(png_bytes)
        assert mock_get.call_count == 3


class TestRenderFailures:
    def test_upload_rejected(self, client, png_bytes):
        with patch("render_client.requests.post", return_value=json_response({"error": "bad"}, 400)):
            with pytest.raises(RenderFailed, match="upload"):
                client.render(png_bytes)

    def test_queue_rejected(self, client, png_bytes):
        def post(url, **kwargs):
            if url.endswith("/prompt"):
                return json_response({"error": "invalid prompt"}, 400)
            return fake_post(url, **kwargs)

        with patch("render_client.requests.post", side_effect=post):
            with pytest.raises(RenderFailed, match="queue"):
                client.render(png_bytes)

    def test_timeout(self, client, png_bytes):
        with patch("render_client.requests.post", side_effect=fake_post), \
                patch("render_client.requests.get", return_value=json_response({})):
            with pytest.raises(RenderFailed, match="didn't complete"):
                client.render(png_bytes)

    def test_no_image_output(self, client, png_bytes):
        history = json_response({"prompt-1": {"outputs": {"8": {"text": ["nothing"]}}}})
        with patch("render_client.requests.post", side_effect=fake_post), \
                patch("render_client.requests.get", return_value=history):
            with pytest.raises(RenderFailed, match="No outputs"):
                client.render(png_bytes)

    def test_connection_error(self, client, png_bytes):
        with patch("render_client.requests.post", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(RenderFailed, match="ComfyUI API error"):
                client.render(png_bytes)

    def test_missing_workflow(self, tmp_path, png_bytes):
        client = RenderClient(BASE_URL, workflow_dir=tmp_path)
        with patch("render_client.requests.post", side_effect=fake_post):
            with pytest.raises(RenderFailed, match="not found"):
                client.render(png_bytes)
