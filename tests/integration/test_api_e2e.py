"""
End-to-End API Tests
"""

import httpx
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, Mock

from shortsfusion.api.dependencies import get_image_provider, get_job_queue, get_rate_limiter
from shortsfusion.api.main import app
from shortsfusion.models import get_db
from shortsfusion.services.identity import IdentityProvider
from shortsfusion.services.pipeline import PipelineOrchestrator
from shortsfusion.services.rate_limiter import RateLimiter
from tests.fixtures import SAMPLE_GENERATE_REQUEST, SAMPLE_TWO_PHASE_REQUEST

pytestmark = pytest.mark.asyncio


def _auth(user_id: str = "user-1") -> dict:
    token = IdentityProvider().issue(user_id, f"{user_id}@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def image_provider():
    provider = Mock()
    provider.generate = AsyncMock(return_value="http://test/static/images/regenerated.png")
    return provider


@pytest_asyncio.fixture
async def client(test_db_session, mock_queue, image_provider):
    """Create test client"""

    async def override_get_db():
        yield test_db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_job_queue] = lambda: mock_queue
    app.dependency_overrides[get_image_provider] = lambda: image_provider
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


class TestGenerationAPI:
    """E2E tests for POST /api/videos/generate"""

    async def test_generate_charges_and_queues(self, client: httpx.AsyncClient, mock_queue):
        response = await client.post(
            "/api/videos/generate", json=SAMPLE_GENERATE_REQUEST, headers=_auth()
        )

        assert response.status_code == 202
        data = response.json()
        assert data["tokensCharged"] == 10
        assert data["status"] == "queued"
        mock_queue.enqueue.assert_called_once_with(data["videoId"])

        balance = (await client.get("/api/account/balance", headers=_auth())).json()
        assert balance == {"tokens": 0, "plan": "free", "ledgerSum": 0}

    async def test_insufficient_balance(self, client: httpx.AsyncClient, mock_queue):
        await client.post("/api/videos/generate", json=SAMPLE_GENERATE_REQUEST, headers=_auth())

        response = await client.post(
            "/api/videos/generate",
            json={"topic": "Another", "visualStyle": "minimal", "duration": 30},
            headers=_auth(),
        )

        assert response.status_code == 402
        error = response.json()["error"]
        assert error["code"] == "INSUFFICIENT_BALANCE"
        assert error["required"] == 6
        assert error["available"] == 0
        assert mock_queue.enqueue.call_count == 1

    async def test_unsupported_style(self, client: httpx.AsyncClient, mock_queue):
        response = await client.post(
            "/api/videos/generate",
            json={"topic": "Octopus", "visualStyle": "vaporwave", "duration": 60},
            headers=_auth(),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_PARAMETERS"
        mock_queue.enqueue.assert_not_called()

    async def test_missing_field(self, client: httpx.AsyncClient):
        response = await client.post(
            "/api/videos/generate",
            json={"visualStyle": "cinematic", "duration": 60},
            headers=_auth(),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer not-a-jwt"}],
    )
    async def test_requires_bearer_token(self, client: httpx.AsyncClient, headers):
        response = await client.post(
            "/api/videos/generate", json=SAMPLE_GENERATE_REQUEST, headers=headers
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHENTICATED"

    async def test_enqueue_failure_still_accepted(self, client: httpx.AsyncClient, mock_queue):
        mock_queue.enqueue.side_effect = ConnectionError("redis down")

        response = await client.post(
            "/api/videos/generate", json=SAMPLE_GENERATE_REQUEST, headers=_auth()
        )

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "queued"
        assert data["tokensCharged"] == 10

        detail = await client.get(f"/api/videos/{data['videoId']}", headers=_auth())
        assert detail.json()["status"] == "queued"

    async def test_rate_limited(self, client: httpx.AsyncClient, mock_redis, mock_queue):
        mock_redis.zcard.return_value = 1
        app.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(
            redis_client=mock_redis, requests_per_minute=1
        )

        response = await client.post(
            "/api/videos/generate", json=SAMPLE_GENERATE_REQUEST, headers=_auth()
        )

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        mock_queue.enqueue.assert_not_called()


class TestVideosAPI:
    """E2E tests for video reads"""

    async def test_list_and_detail(self, client: httpx.AsyncClient):
        created = await client.post(
            "/api/videos/generate",
            json={"topic": "Bees", "visualStyle": "minimal", "duration": 30},
            headers=_auth(),
        )
        video_id = created.json()["videoId"]

        listing = await client.get("/api/videos", headers=_auth())
        assert listing.status_code == 200
        assert [v["video_id"] for v in listing.json()] == [video_id]

        detail = await client.get(f"/api/videos/{video_id}", headers=_auth())
        assert detail.status_code == 200
        body = detail.json()
        assert body["status"] == "queued"
        assert body["tokens_charged"] == 6
        assert body["scenes"] == []
        assert body["status_transitions"][0]["event"] == "video_admitted"

    async def test_other_users_video_is_not_found(self, client: httpx.AsyncClient):
        created = await client.post(
            "/api/videos/generate", json=SAMPLE_GENERATE_REQUEST, headers=_auth("user-1")
        )
        video_id = created.json()["videoId"]

        response = await client.get(f"/api/videos/{video_id}", headers=_auth("user-2"))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "VIDEO_NOT_FOUND"
        assert (await client.get("/api/videos", headers=_auth("user-2"))).json() == []

    async def test_ledger_history(self, client: httpx.AsyncClient):
        await client.post("/api/videos/generate", json=SAMPLE_GENERATE_REQUEST, headers=_auth())

        response = await client.get("/api/account/ledger", headers=_auth())

        reasons = [entry["reason"] for entry in response.json()]
        assert reasons == ["GENERATE_VIDEO", "SIGNUP_GRANT"]


class TestTwoPhaseAPI:
    """Preview editing and finalize"""

    async def test_edit_then_finalize(
        self,
        client: httpx.AsyncClient,
        test_db_session,
        fake_providers,
        no_sleep,
        mock_queue,
        image_provider,
    ):
        created = await client.post(
            "/api/videos/generate", json=SAMPLE_TWO_PHASE_REQUEST, headers=_auth()
        )
        video_id = created.json()["videoId"]
        status = await PipelineOrchestrator(fake_providers, sleep=no_sleep).run(
            test_db_session, video_id
        )
        assert status == "preview_ready"

        animated = await client.post(
            f"/api/videos/{video_id}/animate-slide",
            json={"sequenceIndex": 0, "animated": True},
            headers=_auth(),
        )
        assert animated.status_code == 200
        assert animated.json()["is_animated"] is True

        regenerated = await client.post(
            f"/api/videos/{video_id}/regenerate-slide",
            json={"sequenceIndex": 1, "imagePrompt": "Lava meeting the ocean"},
            headers=_auth(),
        )
        assert regenerated.status_code == 200
        assert regenerated.json()["image_url"] == "http://test/static/images/regenerated.png"
        image_provider.generate.assert_awaited_once_with("Lava meeting the ocean", "minimal")

        balance = (await client.get("/api/account/balance", headers=_auth())).json()
        assert balance["tokens"] == 2
        assert balance["ledgerSum"] == 2

        finalized = await client.post(f"/api/videos/{video_id}/finalize", headers=_auth())
        assert finalized.status_code == 202
        assert finalized.json()["status"] == "finalizing"
        mock_queue.enqueue.assert_called_with(video_id, phase="render")

        late_edit = await client.post(
            f"/api/videos/{video_id}/animate-slide",
            json={"sequenceIndex": 2},
            headers=_auth(),
        )
        assert late_edit.status_code == 409
        assert late_edit.json()["error"]["code"] == "INVALID_VIDEO_STATE"

    async def test_edit_requires_preview(self, client: httpx.AsyncClient):
        created = await client.post(
            "/api/videos/generate", json=SAMPLE_TWO_PHASE_REQUEST, headers=_auth()
        )
        video_id = created.json()["videoId"]

        response = await client.post(f"/api/videos/{video_id}/finalize", headers=_auth())

        assert response.status_code == 409


class TestPaymentWebhook:
    """Plan change webhook"""

    WEBHOOK_HEADERS = {"X-Webhook-Secret": "test-webhook-secret"}

    async def test_plan_change_is_idempotent(self, client: httpx.AsyncClient):
        await client.get("/api/account/balance", headers=_auth())
        event = {"eventId": "evt_123", "userId": "user-1", "plan": "pro", "tokens": 50}

        first = await client.post("/api/webhooks/payments", json=event, headers=self.WEBHOOK_HEADERS)
        second = await client.post("/api/webhooks/payments", json=event, headers=self.WEBHOOK_HEADERS)

        assert first.status_code == 200
        assert first.json() == {"userId": "user-1", "plan": "pro", "tokens": 60}
        assert second.json()["tokens"] == 60

    async def test_wrong_secret(self, client: httpx.AsyncClient):
        response = await client.post(
            "/api/webhooks/payments",
            json={"eventId": "evt_1", "userId": "user-1", "plan": "pro"},
            headers={"X-Webhook-Secret": "guess"},
        )

        assert response.status_code == 401

    async def test_unknown_user(self, client: httpx.AsyncClient):
        response = await client.post(
            "/api/webhooks/payments",
            json={"eventId": "evt_2", "userId": "ghost", "plan": "pro"},
            headers=self.WEBHOOK_HEADERS,
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "USER_NOT_FOUND"

    async def test_unknown_plan(self, client: httpx.AsyncClient):
        await client.get("/api/account/balance", headers=_auth())

        response = await client.post(
            "/api/webhooks/payments",
            json={"eventId": "evt_3", "userId": "user-1", "plan": "platinum"},
            headers=self.WEBHOOK_HEADERS,
        )

        assert response.status_code == 400


async def test_health(client: httpx.AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["service"] == "shortsfusion-backend"
