import json

import pytest

from conftest import ALICE, ANALYSIS, BOB, MIND_MAP, status_error, timeout_error
from skillscope.errors import PersistenceError
from skillscope.generator import Generator

ORIGIN = {"Origin": "http://localhost:5173"}


def _conversation(client, headers=ALICE, **body):
    response = client.post("/conversations", json=body, headers=headers)
    assert response.status_code == 201
    return response.get_json()["conversation"]["id"]


def _system_prompt(gateway, call=0):
    return gateway.calls[call]["messages"][0]["content"]


# Topic analysis


def test_analyze_topic(client, gateway):
    gateway.tool_reply("provide_analysis", ANALYSIS)

    response = client.post("/analyze-topic", json={"topic": "Kubernetes"})

    assert response.status_code == 200
    analysis = response.get_json()["analysis"]
    assert analysis["relevance"]["status"] == "current"
    assert analysis["relevance"]["companiesUsingIt"] == ["Google", "Spotify"]
    assert analysis["projectIdeas"] == ["Deploy a web app with Helm"]
    assert '"Kubernetes"' in gateway.calls[0]["messages"][1]["content"]


@pytest.mark.parametrize("body", [{}, {"topic": ""}, {"topic": "   "}, {"topic": 42}])
def test_analyze_topic_requires_topic(client, gateway, body):
    response = client.post("/analyze-topic", json=body)
    assert response.status_code == 400
    assert response.get_json() == {"error": "Topic is required and must be a string"}
    assert gateway.calls == []


def test_analyze_topic_rejects_non_json(client, gateway):
    response = client.post("/analyze-topic", data="topic=Rust", content_type="text/plain")
    assert response.status_code == 400
    assert gateway.calls == []


@pytest.mark.parametrize(
    "error, status, message",
    [
        (status_error(429), 429, "Rate limit exceeded. Please try again in a moment."),
        (status_error(402), 402, "AI credits depleted. Please add more credits to continue."),
        (status_error(503), 500, "AI service request failed. Please try again."),
        (timeout_error(), 500, "AI service request failed. Please try again."),
    ],
)
def test_analyze_topic_gateway_errors(client, gateway, error, status, message):
    gateway.fail(error)
    response = client.post("/analyze-topic", json={"topic": "Rust"})
    assert response.status_code == status
    assert response.get_json() == {"error": message}


def test_analyze_topic_without_tool_call(client, gateway):
    gateway.reply("Kubernetes is great!")
    response = client.post("/analyze-topic", json={"topic": "Kubernetes"})
    assert response.status_code == 500
    assert response.get_json() == {"error": "Invalid response from AI service"}


def test_signed_in_analysis_records_interest(client, gateway):
    gateway.tool_reply("provide_analysis", ANALYSIS)
    gateway.tool_reply("provide_analysis", ANALYSIS)
    client.post("/analyze-topic", json={"topic": "Kubernetes"}, headers=ALICE)
    client.post("/analyze-topic", json={"topic": "kubernetes"}, headers=ALICE)

    interests = client.get("/interests", headers=ALICE).get_json()["interests"]
    assert [(item["topic"], item["searchCount"]) for item in interests] == [("Kubernetes", 2)]


# Mind map


def test_generate_mind_map(client, gateway):
    gateway.reply("```json\n" + json.dumps(MIND_MAP) + "\n```")

    response = client.post(
        "/generate-mind-map",
        json={"topic": "Rust", "interestArea": "embedded", "skillLevel": "advanced"},
    )

    assert response.status_code == 200
    mind_map = response.get_json()["mindMap"]
    assert len(mind_map["nodes"]) == 4
    assert mind_map["edges"][0] == {"from": "root", "to": "core-1"}
    assert gateway.calls[0]["response_format"] == {"type": "json_object"}
    assert "Interest Area: embedded" in _system_prompt(gateway)


def test_generate_mind_map_drops_dangling_edges(client, gateway):
    data = dict(MIND_MAP, edges=MIND_MAP["edges"] + [{"from": "root", "to": "ghost"}])
    gateway.reply(json.dumps(data))
    response = client.post("/generate-mind-map", json={"topic": "Rust"})
    assert len(response.get_json()["mindMap"]["edges"]) == 3


def test_generate_mind_map_malformed(client, gateway):
    gateway.reply("Here is your mind map: nodes...")
    response = client.post("/generate-mind-map", json={"topic": "Rust"})
    assert response.status_code == 500
    assert response.get_json() == {"error": "AI service returned a malformed mind map"}


def test_mind_map_layout(client):
    response = client.post("/mind-map/layout", json={"mindMap": MIND_MAP})
    assert response.status_code == 200
    layout = response.get_json()
    assert layout["nodes"][0]["position"] == {"x": 400, "y": 50}
    assert len(layout["edges"]) == 3

    assert client.post("/mind-map/layout", json={}).status_code == 400


# Chat


def test_chat_requires_authentication(client, gateway):
    response = client.post("/personalized-chat", json={"message": "hi", "conversationId": "x"})
    assert response.status_code == 401
    assert response.get_json() == {"error": "user not found!"}

    response = client.post(
        "/personalized-chat",
        json={"message": "hi", "conversationId": "x"},
        headers={"Authorization": "Bearer wrong"},
    )
    assert response.status_code == 401


def test_chat_turn_is_persisted_as_a_pair(client, gateway):
    conv_id = _conversation(client, assistanceType="academic")
    gateway.reply("Ownership is how Rust manages memory.")

    response = client.post(
        "/personalized-chat",
        json={
            "message": "What is ownership?",
            "conversationId": conv_id,
            "assistanceType": "academic",
            "userInterests": ["Rust"],
        },
        headers=ALICE,
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["response"] == "Ownership is how Rust manages memory."
    assert [turn["role"] for turn in body["turns"]] == ["user", "assistant"]
    assert "warnings" not in body

    prompt = _system_prompt(gateway)
    assert prompt.startswith("You are a personalized academic assistant.")
    assert "User's main interests: Rust." in prompt

    messages = client.get(f"/conversations/{conv_id}/messages", headers=ALICE).get_json()["messages"]
    assert [(turn["role"], turn["content"]) for turn in messages] == [
        ("user", "What is ownership?"),
        ("assistant", "Ownership is how Rust manages memory."),
    ]


@pytest.mark.parametrize("error, status", [(status_error(429), 429), (status_error(402), 402), (timeout_error(), 500)])
def test_failed_chat_leaves_no_turns(client, gateway, error, status):
    conv_id = _conversation(client)
    gateway.fail(error)

    response = client.post(
        "/personalized-chat", json={"message": "hi", "conversationId": conv_id}, headers=ALICE
    )

    assert response.status_code == status
    assert client.get(f"/conversations/{conv_id}/messages", headers=ALICE).get_json()["messages"] == []


def test_chat_history_is_capped(client, gateway, store):
    conv_id = _conversation(client)
    for index in range(15):
        store.append_turn_pair(conv_id, f"question {index}", f"answer {index}")
    gateway.reply("ok")

    client.post("/personalized-chat", json={"message": "next", "conversationId": conv_id}, headers=ALICE)

    messages = gateway.calls[0]["messages"]
    assert len(messages) == 1 + 20 + 1
    assert messages[1]["content"] == "question 5"
    assert messages[-1] == {"role": "user", "content": "next"}


def test_chat_uses_stored_interests(client, gateway, store):
    store.record_interest("alice", "Go")
    conv_id = _conversation(client)
    gateway.reply("ok")

    client.post("/personalized-chat", json={"message": "hi", "conversationId": conv_id}, headers=ALICE)

    assert "User's main interests: Go." in _system_prompt(gateway)


def test_chat_keeps_at_most_five_interests(client, gateway):
    conv_id = _conversation(client)
    gateway.reply("ok")
    interests = ["a", "b", "c", "d", "e", "f", "g"]

    client.post(
        "/personalized-chat",
        json={"message": "hi", "conversationId": conv_id, "userInterests": interests},
        headers=ALICE,
    )

    assert "User's main interests: a, b, c, d, e." in _system_prompt(gateway)


def test_chat_unknown_assistance_type_is_general(client, gateway):
    conv_id = _conversation(client)
    gateway.reply("ok")
    client.post(
        "/personalized-chat",
        json={"message": "hi", "conversationId": conv_id, "assistanceType": "astrology"},
        headers=ALICE,
    )
    assert _system_prompt(gateway).startswith("You are a helpful and friendly learning assistant.")


def test_chat_validation(client, gateway):
    conv_id = _conversation(client)
    for body in ({"conversationId": conv_id}, {"message": "hi"}, {"message": "", "conversationId": conv_id}):
        response = client.post("/personalized-chat", json=body, headers=ALICE)
        assert response.status_code == 400
    assert gateway.calls == []


def test_chat_rejects_someone_elses_user_id(client, gateway):
    conv_id = _conversation(client)
    response = client.post(
        "/personalized-chat",
        json={"message": "hi", "conversationId": conv_id, "userId": "bob"},
        headers=ALICE,
    )
    assert response.status_code == 400


def test_chat_rejects_too_long_messages(client, gateway, monkeypatch):
    monkeypatch.setattr(Generator, "count_tokens", staticmethod(lambda text, model="x": 10**6))
    conv_id = _conversation(client)
    response = client.post(
        "/personalized-chat", json={"message": "x" * 5000, "conversationId": conv_id}, headers=ALICE
    )
    assert response.status_code == 400
    assert gateway.calls == []


def test_chat_in_someone_elses_conversation(client, gateway):
    conv_id = _conversation(client, headers=BOB)
    response = client.post(
        "/personalized-chat", json={"message": "hi", "conversationId": conv_id}, headers=ALICE
    )
    assert response.status_code == 404
    assert client.get(f"/conversations/{conv_id}/messages", headers=ALICE).status_code == 404


def test_chat_in_unknown_conversation(client, gateway):
    response = client.post(
        "/personalized-chat", json={"message": "hi", "conversationId": "nope"}, headers=ALICE
    )
    assert response.status_code == 404


def test_reply_survives_a_store_failure(client, gateway, store, monkeypatch):
    conv_id = _conversation(client)
    gateway.reply("still here")

    def broken(*args, **kwargs):
        raise PersistenceError()

    monkeypatch.setattr(store, "append_turn_pair", broken)
    response = client.post(
        "/personalized-chat", json={"message": "hi", "conversationId": conv_id}, headers=ALICE
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["response"] == "still here"
    assert body["turns"] == []
    assert body["warnings"] == ["This conversation could not be saved."]


# Conversations


def test_switching_assistance_type(client, gateway):
    conv_id = _conversation(client)
    response = client.patch(f"/conversations/{conv_id}", json={"assistanceType": "projects"}, headers=ALICE)
    assert response.get_json()["conversation"]["assistanceType"] == "projects"

    gateway.reply("ok")
    client.post("/personalized-chat", json={"message": "hi", "conversationId": conv_id}, headers=ALICE)
    assert _system_prompt(gateway).startswith("You are a hands-on project mentor.")

    response = client.patch(f"/conversations/{conv_id}", json={"assistanceType": "astrology"}, headers=ALICE)
    assert response.status_code == 400


def test_change_feed_after(client, store):
    conv_id = _conversation(client)
    _, first_reply = store.append_turn_pair(conv_id, "one", "two")
    store.append_turn_pair(conv_id, "three", "four")

    response = client.get(f"/conversations/{conv_id}/messages?after={first_reply.id}", headers=ALICE)
    assert [turn["content"] for turn in response.get_json()["messages"]] == ["three", "four"]

    response = client.get(f"/conversations/{conv_id}/messages?after=abc", headers=ALICE)
    assert response.status_code == 400


# Saved mind maps


def test_save_and_list_mind_maps(client):
    data = dict(MIND_MAP, edges=MIND_MAP["edges"] + [{"from": "root", "to": "ghost"}])
    response = client.post(
        "/mind-maps", json={"topic": "Rust", "skillLevel": "beginner", "mindMap": data}, headers=ALICE
    )
    assert response.status_code == 201
    assert len(response.get_json()["mindMap"]["mapData"]["edges"]) == 3

    saved = client.get("/mind-maps", headers=ALICE).get_json()["mindMaps"]
    assert [item["topic"] for item in saved] == ["Rust"]
    assert client.get("/mind-maps", headers=BOB).get_json()["mindMaps"] == []


# HTTP plumbing


@pytest.mark.parametrize(
    "path", ["/analyze-topic", "/generate-mind-map", "/personalized-chat", "/conversations/abc"]
)
def test_preflight(client, path):
    response = client.options(
        path,
        headers={
            **ORIGIN,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, content-type",
        },
    )
    assert response.status_code == 204
    assert response.data == b""
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_error_responses_carry_cors_headers(client):
    response = client.post("/analyze-topic", json={}, headers=ORIGIN)
    assert response.status_code == 400
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_unknown_route_and_method(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert "error" in response.get_json()

    response = client.get("/analyze-topic")
    assert response.status_code == 405
    assert response.get_json() == {"error": "Method not allowed."}


def test_unknown_token_is_rejected_on_optional_routes(client, gateway):
    response = client.post(
        "/analyze-topic", json={"topic": "Rust"}, headers={"Authorization": "Bearer wrong"}
    )
    assert response.status_code == 401
    assert gateway.calls == []


def test_interest_limit_is_bounded(client, store):
    for topic in ["a", "b", "c", "d", "e", "f", "g"]:
        store.record_interest("alice", topic)

    assert client.get("/interests?limit=-1", headers=ALICE).status_code == 400
    response = client.get("/interests?limit=50", headers=ALICE)
    assert len(response.get_json()["interests"]) == 5
    response = client.get("/interests?limit=2", headers=ALICE)
    assert len(response.get_json()["interests"]) == 2


def test_signed_in_users_cannot_use_anonymous_conversations(client, gateway, store):
    conv_id = store.create_conversation(None).id

    response = client.post(
        "/personalized-chat", json={"message": "hi", "conversationId": conv_id}, headers=ALICE
    )
    assert response.status_code == 404
    assert client.get(f"/conversations/{conv_id}/messages", headers=ALICE).status_code == 404
    assert gateway.calls == []
