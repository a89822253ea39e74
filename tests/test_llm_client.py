"""Tests for LLM client helpers and request building."""

from types import SimpleNamespace
from unittest.mock import patch

from clipscout.config import Config
from clipscout.llm_client import LLMClient, _image_mime, _image_part


def _response(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class TestHelpers:
    def test_image_mime(self):
        assert _image_mime(b"\x89PNG\r\n\x1a\n") == "png"
        assert _image_mime(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "webp"
        assert _image_mime(b"\xff\xd8\xff") == "jpeg"

    def test_image_part_from_path(self, tmp_path):
        path = tmp_path / "frame.png"
        path.write_bytes(b"\x89PNGdata")
        part = _image_part(path)
        assert part["image_url"]["url"].startswith("data:image/png;base64,")

    def test_extract_json_strips_fences(self):
        assert LLMClient._extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert LLMClient._extract_json('  {"a": 1} ') == '{"a": 1}'


class TestRequests:
    @patch("clipscout.llm_client.litellm.completion")
    def test_generate_json(self, completion):
        completion.return_value = _response('```json\n{"queries": ["a"]}\n```')
        client = LLMClient(Config())
        assert client.generate_json("prompt", system_prompt="sys") == {"queries": ["a"]}
        messages = completion.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "sys"}

    @patch("clipscout.llm_client.litellm.completion")
    def test_generate_with_images_uses_vision_model(self, completion):
        completion.return_value = _response("ok")
        config = Config()
        config.llm.vision_model = "gpt-4o"
        client = LLMClient(config)
        assert client.generate_with_images("look", [b"\xff\xd8\xff"]) == "ok"
        kwargs = completion.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        content = kwargs["messages"][-1]["content"]
        assert content[0] == {"type": "text", "text": "look"}
        assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")
