import json

import openai
import pytest

import config
import main

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

MODEL_JSON = json.dumps(
    {
        "primaryLanguage": {"diagnosis": "Cutar ganye", "confidence": 90, "recommendations": ["Fesa magani"]},
        "secondaryLanguage": {"diagnosis": "Leaf blight", "confidence": 90, "recommendations": ["Spray fungicide"]},
    }
)


def _upload(client, content=PNG_BYTES, content_type="image/png", filename="leaf.png"):
    return client.post("/api/analyze", files={"image": (filename, content, content_type)})


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "openai_configured": True}


def test_analyze_returns_bilingual_result(client, fake_llm):
    fake_llm.chat.completions.content = MODEL_JSON

    response = _upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["primaryLanguage"]["diagnosis"] == "Cutar ganye"
    assert body["secondaryLanguage"] == {
        "diagnosis": "Leaf blight",
        "confidence": 90,
        "recommendations": ["Spray fungicide"],
    }
    url = fake_llm.calls[0]["messages"][0]["content"][1]["image_url"]["url"]
    assert url.startswith("data:image/png;base64,")


def test_analyze_falls_back_on_plain_text(client, fake_llm):
    fake_llm.chat.completions.content = "Cutar ganye\nFesa magani\nLeaf blight\nSpray fungicide"

    body = _upload(client).json()

    assert body["primaryLanguage"] == {"diagnosis": "Cutar ganye", "confidence": 70, "recommendations": ["Fesa magani"]}
    assert body["secondaryLanguage"] == {"diagnosis": "Leaf blight", "confidence": 70, "recommendations": ["Spray fungicide"]}


def test_analyze_without_image_is_missing_input(client, fake_llm):
    response = client.post("/api/analyze", data={"note": "no file"})

    assert response.status_code == 400
    assert response.json() == {"error": "No image provided"}
    assert fake_llm.calls == []


def test_analyze_rejects_text_plain(client, fake_llm):
    response = _upload(client, content=b"hello", content_type="text/plain", filename="note.txt")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid file type. Please upload an image."
    assert fake_llm.calls == []


def test_analyze_rejects_oversized_image_before_calling_model(client, fake_llm):
    too_big = b"\x00" * (20 * 1024 * 1024 + 1)

    response = _upload(client, content=too_big, content_type="image/jpeg", filename="big.jpg")

    assert response.status_code == 400
    assert response.json()["error"] == "Image size too large. Maximum size is 20MB."
    assert fake_llm.calls == []


def test_analyze_accepts_image_at_exact_limit(client, fake_llm, monkeypatch):
    monkeypatch.setattr(config, "MAX_IMAGE_BYTES", 1024)
    fake_llm.chat.completions.content = MODEL_JSON

    assert _upload(client, content=b"\x00" * 1024).status_code == 200
    assert _upload(client, content=b"\x00" * 1025).status_code == 400
    assert len(fake_llm.calls) == 1


@pytest.mark.parametrize(
    "message, status, error",
    [
        ("Error code: 429 - insufficient_quota", 429, "OpenAI API quota exceeded or billing issue. Please check your account."),
        ("Error code: 401 - invalid_api_key", 500, "Invalid API key configuration."),
        ("The model `gpt-x` does not exist", 500, "The specified model is not available. Please check your OpenAI account access."),
        ("Connection reset by peer", 500, "Failed to analyze image"),
    ],
)
def test_analyze_maps_upstream_failures(client, fake_llm, message, status, error):
    fake_llm.chat.completions.error = openai.OpenAIError(message)

    response = _upload(client)

    assert response.status_code == status
    assert response.json() == {"error": error, "details": message}


def test_analyze_without_api_key(client):
    main.app.dependency_overrides[main.get_llm_client] = lambda: None

    response = _upload(client)

    assert response.status_code == 500
    assert response.json()["error"] == "Invalid API key configuration."


def test_chat_rewrites_grounding_and_returns_reply(client, fake_llm):
    fake_llm.chat.completions.content = "HAUSA:\nEh\n\nENGLISH:\nYes"
    analysis = json.loads(MODEL_JSON)
    payload = {
        "messages": [
            {"role": "assistant", "content": "Analysis complete", "analysis": analysis},
            {"role": "user", "content": "Will it spread?"},
        ],
        "analysis": analysis,
    }

    response = client.post("/api/chat", json=payload)

    assert response.status_code == 200
    assert response.json() == {"response": "HAUSA:\nEh\n\nENGLISH:\nYes"}
    sent = fake_llm.calls[0]["messages"]
    assert sent[0]["role"] == "system"
    assert sent[1]["role"] == "assistant"
    assert sent[1]["content"].startswith("Initial plant analysis:\n")
    assert "Leaf blight" in sent[1]["content"]
    assert "Spray fungicide" in sent[1]["content"]
    assert sent[2] == {"role": "user", "content": "Will it spread?"}


def test_chat_failure_is_generic(client, fake_llm):
    fake_llm.chat.completions.error = openai.OpenAIError("insufficient_quota")

    response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process chat message", "details": "insufficient_quota"}


def test_search_round_trip(client):
    assert client.post("/api/search", json={"diagnosis": "leaf blight"}).json() == {"success": True}
    client.post("/api/search", json={"diagnosis": "root rot", "recommendations": ["use fungicide"], "userId": "u1"})

    fungicide = client.get("/api/search", params={"q": "fungicide"}).json()
    leaf = client.get("/api/search", params={"q": "LEAF"}).json()

    assert [r["diagnosis"] for r in fungicide] == ["root rot"]
    assert fungicide[0]["userId"] == "u1"
    assert "id" in fungicide[0] and "createdAt" in fungicide[0]
    assert [r["diagnosis"] for r in leaf] == ["leaf blight"]


def test_search_without_query(client):
    response = client.get("/api/search")

    assert response.status_code == 400
    assert response.json() == {"error": "No search query provided"}


def test_search_store_failure(client, store, monkeypatch):
    def broken(text):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(store, "query_by_substring", broken)

    response = client.get("/api/search", params={"q": "rot"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to search analyses", "details": "disk on fire"}


def test_analyze_text_part_named_image_is_missing_input(client, fake_llm):
    response = client.post("/api/analyze", data={"image": "not a file"})

    assert response.status_code == 400
    assert response.json() == {"error": "No image provided"}
    assert fake_llm.calls == []


def test_chat_with_unknown_role_is_chat_failure(client, fake_llm):
    response = client.post("/api/chat", json={"messages": [{"role": "system", "content": "x"}]})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to process chat message"
    assert "role" in body["details"]
    assert "detail" not in body
    assert fake_llm.calls == []


def test_chat_with_invalid_json_is_chat_failure(client):
    response = client.post(
        "/api/chat", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to process chat message"


def test_save_with_non_list_recommendations_is_store_failure(client, store):
    response = client.post("/api/search", json={"diagnosis": "rot", "recommendations": "spray"})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to save analysis"
    assert "recommendations" in body["details"]
    assert len(store) == 0
