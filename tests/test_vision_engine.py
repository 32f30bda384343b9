import json
from types import SimpleNamespace
from unittest import mock

import pytest

import config
from vision_engine import VisionAnalyzer, VisionError, encode_image


def fake_client(payload):
    content = payload if isinstance(payload, str) else json.dumps(payload)
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    client = mock.Mock()
    client.chat.completions.create.return_value = response
    return client


@pytest.fixture
def photo(tmp_path):
    path = tmp_path / "bar.png"
    path.write_bytes(b"\x89PNG fake")
    return str(path)


def test_encode_image(photo):
    assert encode_image(photo).startswith("data:image/png;base64,")


def test_requires_api_key(monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", "")
    with pytest.raises(VisionError):
        VisionAnalyzer()


def test_analyze_inventory(photo):
    client = fake_client({"detections": [
        {"brand": "Grey Goose", "product_name": "Vodka", "size_ml": "1000", "category_hint": "vodka", "confidence": 0.93},
        {"brand": "", "product_name": ""},
        "not a dict",
        {"brand": "Aperol", "confidence": None},
    ]})
    detections = VisionAnalyzer(client=client, model="test-model").analyze_inventory(photo)

    assert detections == [
        {"brand": "Grey Goose", "product_name": "Vodka", "size_ml": 1000.0, "category_hint": "vodka", "confidence": 0.93},
        {"brand": "Aperol", "product_name": "", "size_ml": None, "category_hint": None, "confidence": 0.0},
    ]
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["response_format"] == {"type": "json_object"}
    image_part = kwargs["messages"][0]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/png;base64,")


def test_analyze_compliance(photo):
    client = fake_client({
        "summary": "Hand sink blocked",
        "compliance_score": "70",
        "issues": [{"description": "Bus tub in hand sink", "severity": "HIGH", "confidence": 0.8,
                    "recommendation": "Clear the sink"},
                   {"description": "Towel on counter", "severity": "whatever"}],
    })
    result = VisionAnalyzer(client=client).analyze_compliance(photo, "Hand sink accessible")

    assert result["compliance_score"] == 70.0
    assert [i["severity"] for i in result["issues"]] == ["high", "low"]
    prompt = client.chat.completions.create.call_args.kwargs["messages"][0]["content"][0]["text"]
    assert "Hand sink accessible" in prompt


def test_compliance_without_issues_key(photo):
    with pytest.raises(VisionError):
        VisionAnalyzer(client=fake_client({"summary": "ok"})).analyze_compliance(photo, "Floors dry")


def test_unparseable_response(photo):
    with pytest.raises(VisionError):
        VisionAnalyzer(client=fake_client("not json")).analyze_inventory(photo)
