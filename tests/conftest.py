import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from skillscope import SkillScopeServer
from skillscope.client import SkillScopeClient
from skillscope.config import Config

GATEWAY_URL = "http://gateway.test/v1"
BASE_URL = "http://skillscope.test"

ALICE = {"Authorization": "Bearer alice-key"}
BOB = {"Authorization": "Bearer bob-key"}

ANALYSIS = {
    "relevance": {
        "status": "current",
        "explanation": "Kubernetes is the default way to run containers.",
        "adoptionRate": "Very high",
        "companiesUsingIt": ["Google", "Spotify"],
    },
    "overview": ["Container orchestration platform"],
    "modernApplications": ["Cloud native services"],
    "importance": ["Industry standard"],
    "skillsTools": ["kubectl", "Helm"],
    "projectIdeas": ["Deploy a web app with Helm"],
    "skillGap": ["Networking fundamentals"],
}

MIND_MAP = {
    "nodes": [
        {"id": "root", "label": "Rust", "category": "root"},
        {"id": "core-1", "label": "Ownership", "category": "core", "description": "Who frees memory"},
        {"id": "core-2", "label": "Traits", "category": "core"},
        {"id": "skill-1", "label": "Cargo", "category": "skill"},
    ],
    "edges": [
        {"from": "root", "to": "core-1"},
        {"from": "root", "to": "core-2"},
        {"from": "core-1", "to": "skill-1"},
    ],
}


def chat_response(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(model="test-model", usage=None, choices=[SimpleNamespace(message=message)])


def tool_call(name, arguments):
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return SimpleNamespace(function=SimpleNamespace(name=name, arguments=arguments))


def status_error(status_code):
    request = httpx.Request("POST", GATEWAY_URL + "/chat/completions")
    response = httpx.Response(status_code, request=request)
    return openai.APIStatusError(f"Error code: {status_code}", response=response, body=None)


def timeout_error():
    return openai.APITimeoutError(request=httpx.Request("POST", GATEWAY_URL + "/chat/completions"))


class FakeCompletions:
    def __init__(self):
        self.responses = []
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if not self.responses:
            raise AssertionError("unexpected call to the gateway")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeGateway:
    """Stands in for openai.OpenAI: only chat.completions.create is used"""

    def __init__(self):
        self.completions = FakeCompletions()
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self):
        return self.completions.calls

    def reply(self, content):
        self.completions.responses.append(chat_response(content=content))

    def tool_reply(self, name, arguments):
        self.completions.responses.append(chat_response(tool_calls=[tool_call(name, arguments)]))

    def fail(self, exception):
        self.completions.responses.append(exception)


@pytest.fixture
def config(tmp_path):
    return Config.model_validate(
        {
            "db": {"path": str(tmp_path / "skillscope.sqlite3")},
            "users": {
                "alice": {"realname": "Alice", "api_key": "alice-key"},
                "bob": {"realname": "Bob", "api_key": "bob-key"},
            },
            "llm": {
                "default_profile": "gateway",
                "timeout": 5,
                "profiles": {
                    "gateway": {
                        "type": "openai",
                        "default_model": "test-model",
                        "config": {"base_url": GATEWAY_URL, "api_key": "test"},
                    }
                },
            },
        }
    )


@pytest.fixture
def server(config):
    server = SkillScopeServer(config=config)
    server.app.config["TESTING"] = True
    yield server
    server.store.close_db_connection()


@pytest.fixture
def gateway(server):
    fake = FakeGateway()
    server.generator._clients["gateway"] = fake
    return fake


@pytest.fixture
def store(server):
    return server.store


@pytest.fixture
def client(server):
    return server.app.test_client()


class FlaskSession:
    """requests.Session look-alike that forwards to the Flask test client"""

    def __init__(self, test_client):
        self.test_client = test_client
        self.requests = []

    def request(self, method, url, json=None, params=None, headers=None, timeout=None):
        self.requests.append({"method": method, "url": url, "json": json, "timeout": timeout})
        response = self.test_client.open(
            url[len(BASE_URL):], method=method, json=json, query_string=params, headers=headers
        )
        return SimpleNamespace(status_code=response.status_code, json=response.get_json)


@pytest.fixture
def session(client):
    return FlaskSession(client)


@pytest.fixture
def api(session):
    return SkillScopeClient(base_url=BASE_URL, api_key="alice-key", timeout=7, session=session)
