"""
Tests for the HTTP gateway, token provider and retry policy.

The platform is simulated with httpx.MockTransport; no network is used.
"""

import asyncio
import json

import httpx
import pytest

from agentmirror.core.gateway import (
    AuthenticationError,
    GatewayError,
    HttpGateway,
    RemoteGateway,
    RetryPolicy,
    StoredTokens,
    call_with_retry,
    is_transient,
)
from agentmirror.core.gateway.auth import TOKEN_ENDPOINT
from agentmirror.core.gateway.client import RETRIED_EXTENSION
from agentmirror.core.tree import CustomerAttribute, FlowMetadata, RunnerKind, SkillMetadata

BASE_URL = "https://platform.test"

# ==============================================================================
# Simulated platform
# ==============================================================================


class FakePlatform:
    """
    MockTransport handler.

    Token requests are answered with tok1, tok2, ... in order. Other
    requests are dispatched to `routes[(method, path)]`, a callable taking
    the request.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.exchanges = 0
        self.routes = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == TOKEN_ENDPOINT:
            self.exchanges += 1
            return httpx.Response(
                200, json={"access_token": f"tok{self.exchanges}", "expires_in": 3600}
            )
        return self.routes[(request.method, request.url.path)](request)

    def hits(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


def make_gateway(platform, *, api_key="key-123", **kwargs) -> HttpGateway:
    kwargs.setdefault("retry", RetryPolicy(max_retries=2, base_delay=0.001, jitter=0.0))
    return HttpGateway(BASE_URL, api_key, transport=httpx.MockTransport(platform), **kwargs)


@pytest.fixture
def platform():
    return FakePlatform()


PROJECTS = "/api/v1/designer/projects"


# ==============================================================================
# Authentication
# ==============================================================================


class TestAuthentication:
    """Test token exchange, caching and 401 handling."""

    @pytest.mark.asyncio
    async def test_exchange_then_bearer(self, platform):
        """The API key is exchanged once and the token sent as a bearer."""
        platform.routes[("GET", PROJECTS)] = lambda r: httpx.Response(
            200, json=[{"id": "p1", "idn": "shop"}]
        )
        async with make_gateway(platform) as gateway:
            projects = await gateway.list_projects()
            await gateway.list_projects()

        assert [p.idn for p in projects] == ["shop"]
        assert platform.exchanges == 1
        assert platform.hits(TOKEN_ENDPOINT)[0].headers["x-api-key"] == "key-123"
        assert platform.hits(PROJECTS)[0].headers["Authorization"] == "Bearer tok1"

    @pytest.mark.asyncio
    async def test_token_cache_is_reused(self, platform, tmp_path):
        """A cached, unexpired token skips the exchange."""
        cache = tmp_path / "tokens.json"
        platform.routes[("GET", PROJECTS)] = lambda r: httpx.Response(200, json=[])
        async with make_gateway(platform, token_cache=cache) as gateway:
            await gateway.list_projects()
        assert json.loads(cache.read_text())["access_token"] == "tok1"

        second = FakePlatform()
        second.routes[("GET", PROJECTS)] = lambda r: httpx.Response(200, json=[])
        async with make_gateway(second, token_cache=cache) as gateway:
            await gateway.list_projects()
        assert second.exchanges == 0
        assert second.hits(PROJECTS)[0].headers["Authorization"] == "Bearer tok1"

    @pytest.mark.asyncio
    async def test_401_reauthenticates_once(self, platform):
        """A 401 triggers one fresh exchange and one resend of the same request."""

        def projects(request):
            if request.headers["Authorization"] == "Bearer tok1":
                return httpx.Response(401, json={"message": "expired"})
            return httpx.Response(200, json=[])

        platform.routes[("GET", PROJECTS)] = projects
        async with make_gateway(platform) as gateway:
            assert await gateway.list_projects() == []

        attempts = platform.hits(PROJECTS)
        assert platform.exchanges == 2
        assert len(attempts) == 2
        assert attempts[-1].extensions.get(RETRIED_EXTENSION) is True

    @pytest.mark.asyncio
    async def test_second_401_is_final(self, platform):
        """A request already retried after a 401 is not retried again."""
        platform.routes[("GET", PROJECTS)] = lambda r: httpx.Response(
            401, json={"message": "nope"}
        )
        async with make_gateway(platform) as gateway:
            with pytest.raises(GatewayError) as exc_info:
                await gateway.list_projects()

        assert exc_info.value.status_code == 401
        assert len(platform.hits(PROJECTS)) == 2
        assert platform.exchanges == 2

    @pytest.mark.asyncio
    async def test_concurrent_401s_share_one_exchange(self, platform):
        """Requests rejected with the same stale token trigger a single exchange."""

        def skill(request):
            if request.headers["Authorization"] == "Bearer tok1":
                return httpx.Response(401)
            skill_id = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"id": skill_id, "idn": f"skill_{skill_id}"})

        platform.routes[("GET", "/api/v1/designer/skills/s1")] = skill
        platform.routes[("GET", "/api/v1/designer/skills/s2")] = skill
        async with make_gateway(platform) as gateway:
            first, second = await asyncio.gather(gateway.get_skill("s1"), gateway.get_skill("s2"))

        assert (first.id, second.id) == ("s1", "s2")
        assert platform.exchanges == 2

    @pytest.mark.asyncio
    async def test_missing_api_key(self, platform):
        """Without an API key nothing is sent."""
        async with make_gateway(platform, api_key="") as gateway:
            with pytest.raises(AuthenticationError, match="No API key"):
                await gateway.list_projects()
        assert platform.requests == []

    @pytest.mark.asyncio
    async def test_rejected_api_key(self):
        """A refused exchange surfaces as AuthenticationError with the status."""

        def handler(request):
            return httpx.Response(403, json={"message": "invalid key"})

        async with make_gateway(handler) as gateway:
            with pytest.raises(AuthenticationError) as exc_info:
                await gateway.list_projects()
        assert exc_info.value.status_code == 403
        assert "invalid key" in exc_info.value.message


class TestStoredTokens:
    """Test token response normalization."""

    def test_alternate_field_names(self):
        """token/accessToken are accepted as the access token."""
        assert StoredTokens.from_token_response({"token": "a"}).access_token == "a"
        assert StoredTokens.from_token_response({"accessToken": "b"}).access_token == "b"

    def test_missing_token(self):
        """A response without a token is rejected."""
        with pytest.raises(ValueError, match="missing access token"):
            StoredTokens.from_token_response({"expires_in": 10})

    def test_expiry(self):
        """Tokens expire within the skew window."""
        assert StoredTokens(access_token="a", expires_at=1.0).is_expired()
        assert not StoredTokens(access_token="a").is_expired()
        fresh = StoredTokens.from_token_response({"access_token": "a", "expires_in": 3600})
        assert not fresh.is_expired()


# ==============================================================================
# Retries and errors
# ==============================================================================


class TestRetries:
    """Test transient failure handling."""

    @pytest.mark.asyncio
    async def test_5xx_is_retried(self, platform):
        """Server errors are retried until success."""
        answers = iter([503, 502, 200])
        platform.routes[("GET", PROJECTS)] = lambda r: httpx.Response(next(answers), json=[])
        async with make_gateway(platform) as gateway:
            assert await gateway.list_projects() == []
        assert len(platform.hits(PROJECTS)) == 3

    @pytest.mark.asyncio
    async def test_5xx_exhausted(self, platform):
        """After max_retries the last server error surfaces."""
        platform.routes[("GET", PROJECTS)] = lambda r: httpx.Response(500, text="boom")
        async with make_gateway(platform) as gateway:
            with pytest.raises(GatewayError) as exc_info:
                await gateway.list_projects()
        assert exc_info.value.status_code == 500
        assert len(platform.hits(PROJECTS)) == 3

    @pytest.mark.asyncio
    async def test_4xx_is_not_retried(self, platform):
        """Client errors fail on the first attempt."""
        platform.routes[("GET", PROJECTS)] = lambda r: httpx.Response(404)
        async with make_gateway(platform) as gateway:
            with pytest.raises(GatewayError):
                await gateway.list_projects()
        assert len(platform.hits(PROJECTS)) == 1

    @pytest.mark.asyncio
    async def test_transport_error(self, platform):
        """Connection failures are retried and then reported as GatewayError."""

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        platform.routes[("GET", PROJECTS)] = refuse
        async with make_gateway(platform) as gateway:
            with pytest.raises(GatewayError, match="List projects failed"):
                await gateway.list_projects()
        assert len(platform.hits(PROJECTS)) == 3

    @pytest.mark.asyncio
    async def test_429_waits_as_advised(self, platform, monkeypatch):
        """Rate limiting is retried after the Retry-After the platform sends."""
        waits = []

        async def record(delay):
            waits.append(delay)

        monkeypatch.setattr("agentmirror.core.gateway.retry.asyncio.sleep", record)
        answers = iter(
            [httpx.Response(429, headers={"Retry-After": "0.25"}), httpx.Response(200, json=[])]
        )
        platform.routes[("GET", PROJECTS)] = lambda r: next(answers)
        async with make_gateway(platform, retry=RetryPolicy(base_delay=0.001)) as gateway:
            assert await gateway.list_projects() == []

        assert waits == [0.25]
        assert len(platform.hits(PROJECTS)) == 2

    def test_retry_after_is_parsed(self):
        """Retry-After seconds are carried on the error; dates are ignored."""
        request = httpx.Request("GET", BASE_URL)
        seconds = httpx.Response(503, headers={"Retry-After": "3"}, request=request)
        date = httpx.Response(
            503, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}, request=request
        )
        assert GatewayError.from_response(seconds, "List agents").retry_after == 3.0
        assert GatewayError.from_response(date, "List agents").retry_after is None


class TestErrorReasons:
    """Test extraction of structured failure reasons."""

    @pytest.mark.asyncio
    async def test_reasons_list(self, platform):
        """A `reasons` list is carried on the error."""
        platform.routes[("POST", "/api/v1/designer/flows/f1/publish")] = lambda r: httpx.Response(
            422, json={"message": "Validation failed", "reasons": ["greet: unknown tag"]}
        )
        async with make_gateway(platform) as gateway:
            with pytest.raises(GatewayError) as exc_info:
                await gateway.publish_flow("f1")

        error = exc_info.value
        assert error.message == "Publish flow failed: Validation failed"
        assert error.reasons == ["greet: unknown tag"]
        assert str(error).endswith("(HTTP 422)")

    @pytest.mark.asyncio
    async def test_detail_items(self, platform):
        """FastAPI-style `detail` items contribute their msg."""
        platform.routes[("POST", "/api/v1/designer/flows/f1/skills")] = lambda r: httpx.Response(
            422, json={"detail": [{"loc": ["body", "idn"], "msg": "field required"}]}
        )
        async with make_gateway(platform) as gateway:
            with pytest.raises(GatewayError) as exc_info:
                await gateway.create_skill("f1", SkillMetadata(idn="x"), "")
        assert exc_info.value.reasons == ["field required"]

    def test_plain_text_body(self):
        """A non-JSON body becomes part of the message."""
        response = httpx.Response(
            500, text="upstream down", request=httpx.Request("GET", BASE_URL)
        )
        error = GatewayError.from_response(response, "List agents")
        assert error.message == "List agents failed: upstream down"
        assert error.reasons == []


class TestRetryPolicy:
    """Test RetryPolicy and the transient classification."""

    def test_invalid_settings(self):
        """Out-of-range settings are rejected."""
        with pytest.raises(ValueError, match="max_retries"):
            RetryPolicy(max_retries=-1)
        with pytest.raises(ValueError, match="base_delay"):
            RetryPolicy(base_delay=0)
        with pytest.raises(ValueError, match="max_delay"):
            RetryPolicy(base_delay=2.0, max_delay=1.0)
        with pytest.raises(ValueError, match="jitter"):
            RetryPolicy(jitter=1.0)

    def test_delay_doubles_up_to_the_cap(self):
        """Without jitter delays double per attempt until max_delay."""
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=0.0)
        assert [policy.delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_bounds(self):
        """Jitter stays within the configured fraction."""
        policy = RetryPolicy(base_delay=1.0, jitter=0.2)
        for _ in range(20):
            assert 0.8 <= policy.delay(0) <= 1.2

    def test_retry_after_is_capped(self):
        """Advice from the platform replaces backoff but not the cap."""
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=0.0)
        assert policy.delay(3, retry_after=2.0) == 2.0
        assert policy.delay(0, retry_after=60.0) == 5.0

    def test_classification(self):
        """No answer, 408, 429 and 5xx are transient; other failures are not."""
        assert is_transient(GatewayError("List projects failed: refused"))
        assert is_transient(GatewayError("x", status_code=503))
        assert is_transient(GatewayError("x", status_code=429))
        assert is_transient(GatewayError("x", status_code=408))
        assert not is_transient(GatewayError("x", status_code=400))
        assert not is_transient(GatewayError("x", status_code=409))
        assert not is_transient(AuthenticationError("Token exchange failed: refused"))

    @pytest.mark.asyncio
    async def test_permanent_failure_is_raised_at_once(self):
        """A non-transient GatewayError is not repeated."""
        calls = []

        async def fail():
            calls.append(1)
            raise GatewayError("Create skill failed", status_code=422)

        with pytest.raises(GatewayError):
            await call_with_retry(fail, RetryPolicy(base_delay=0.001))
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate(self):
        """Only GatewayError is considered for retrying."""
        calls = []

        async def fail():
            calls.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await call_with_retry(fail, RetryPolicy(base_delay=0.001))
        assert len(calls) == 1


# ==============================================================================
# Endpoints
# ==============================================================================


class TestEndpoints:
    """Test request shapes of individual operations."""

    @pytest.mark.asyncio
    async def test_list_agents(self, platform):
        """Agents are listed by project id and null flows become empty."""
        platform.routes[("GET", "/api/v1/bff/agents/list")] = lambda r: httpx.Response(
            200,
            json=[
                {"id": "a1", "idn": "support", "flows": [{"id": "f1", "idn": "main"}]},
                {"id": "a2", "idn": "empty", "flows": None},
            ],
        )
        async with make_gateway(platform) as gateway:
            agents = await gateway.list_agents("p1")

        assert platform.hits("/api/v1/bff/agents/list")[0].url.params["project_id"] == "p1"
        assert [f.id for f in agents[0].flows] == ["f1"]
        assert agents[1].flows == []

    @pytest.mark.asyncio
    async def test_null_text_fields_become_empty(self, platform):
        """A null title or description takes the empty default."""
        platform.routes[("GET", "/api/v1/bff/agents/list")] = lambda r: httpx.Response(
            200,
            json=[
                {"id": "a1", "idn": "support", "title": None, "description": None, "flows": None}
            ],
        )
        async with make_gateway(platform) as gateway:
            agents = await gateway.list_agents("p1")

        assert agents[0].title == ""
        assert agents[0].description == ""
        assert agents[0].to_metadata().model_dump()["title"] == ""

    @pytest.mark.asyncio
    async def test_invalid_list_item_is_gateway_error(self, platform):
        """A record that cannot be validated surfaces as GatewayError."""
        platform.routes[("GET", "/api/v1/designer/flows/f1/events")] = lambda r: httpx.Response(
            200, json=[{"id": "e1", "idn": None}]
        )
        async with make_gateway(platform) as gateway:
            with pytest.raises(GatewayError, match="List events returned an invalid record"):
                await gateway.list_flow_events("f1")

    @pytest.mark.asyncio
    async def test_create_flow_without_id(self, platform):
        """An empty create response yields an empty id."""
        platform.routes[("POST", "/api/v1/designer/a1/flows/empty")] = lambda r: httpx.Response(201)
        async with make_gateway(platform) as gateway:
            assert await gateway.create_flow("a1", FlowMetadata(idn="intro")) == ""

    @pytest.mark.asyncio
    async def test_update_skill_payload(self, platform):
        """update_skill sends metadata and script together."""
        platform.routes[("PUT", "/api/v1/designer/flows/skills/s1")] = lambda r: httpx.Response(
            200, json={}
        )
        skill = SkillMetadata(id="s1", idn="greet", title="Greet", runner_type=RunnerKind.NSL)
        async with make_gateway(platform) as gateway:
            await gateway.update_skill("s1", skill, "Hi\n")

        body = json.loads(platform.hits("/api/v1/designer/flows/skills/s1")[0].content)
        assert body["id"] == "s1"
        assert body["prompt_script"] == "Hi\n"
        assert body["runner_type"] == "nsl"
        assert body["path"] is None

    @pytest.mark.asyncio
    async def test_publish_body(self, platform):
        """publish_flow sends the fixed publish descriptor."""
        path = "/api/v1/designer/flows/f1/publish"
        platform.routes[("POST", path)] = lambda r: httpx.Response(200, json={})
        async with make_gateway(platform) as gateway:
            await gateway.publish_flow("f1")

        assert json.loads(platform.hits(path)[0].content) == {
            "version": "1.0",
            "description": "Published via agentmirror",
            "type": "public",
        }

    @pytest.mark.asyncio
    async def test_list_customer_attributes(self, platform):
        """Attributes come from the attributes key, hidden ones included."""
        path = "/api/v1/bff/customer/attributes"
        platform.routes[("GET", path)] = lambda r: httpx.Response(
            200,
            json={
                "groups": ["Texts"],
                "attributes": [
                    {"id": "at1", "idn": "greeting_text", "value": "Hi", "group": "Texts"},
                    {"id": "at2", "idn": "limits", "value": {"turns": 5}, "title": None},
                ],
            },
        )
        async with make_gateway(platform) as gateway:
            attributes = await gateway.list_customer_attributes()

        assert platform.hits(path)[0].url.params["include_hidden"] == "true"
        assert [a.idn for a in attributes] == ["greeting_text", "limits"]
        assert attributes[1].value == '{"turns":5}'
        assert attributes[1].title == ""

    @pytest.mark.asyncio
    async def test_update_customer_attribute_body(self, platform):
        """The attribute is sent by id, without the id in the body."""
        path = "/api/v1/customer/attributes/at1"
        platform.routes[("PUT", path)] = lambda r: httpx.Response(200, json={})
        attribute = CustomerAttribute(id="at1", idn="greeting_text", value="Howdy")
        async with make_gateway(platform) as gateway:
            await gateway.update_customer_attribute(attribute)

        body = json.loads(platform.hits(path)[0].content)
        assert "id" not in body
        assert body["idn"] == "greeting_text"
        assert body["value"] == "Howdy"

    @pytest.mark.asyncio
    async def test_update_customer_attribute_without_id(self, platform):
        """An attribute without an id is refused before any request."""
        async with make_gateway(platform) as gateway:
            with pytest.raises(GatewayError, match="has no id"):
                await gateway.update_customer_attribute(CustomerAttribute(idn="greeting_text"))
        assert platform.requests == []

    def test_satisfies_protocol(self, platform):
        """HttpGateway implements RemoteGateway."""
        gateway = make_gateway(platform)
        assert isinstance(gateway, RemoteGateway)
        asyncio.run(gateway.aclose())
