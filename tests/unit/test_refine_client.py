"""
Unit tests for the refine API client.
"""

import json

import httpx
import pytest

from src.adaptive.models import Tier
from src.delivery.refine_client import REFINE_PATH, RefineClient, RefineRequest, RefinedQuestion


@pytest.fixture
def originals(make_question):
    """Two unrefined questions."""
    return [
        make_question(1, answer="Heart", choices=["Heart", "Other"], text="Which organ pumps blood?"),
        make_question(2, answer="12", choices=["12", "13", "14", "15"]),
    ]


@pytest.fixture
def refined_payload():
    """Server response using camelCase keys."""
    return {
        "questions": [
            {
                "id": 1,
                "text": "Which organ pumps blood around the body?",
                "choices": ["Heart", "Lungs", "Liver", "Kidneys"],
                "answer": "Heart",
                "category": "GS",
                "formulaId": "circulation",
                "difficulty": "very_hard",
                "difficultyWeight": 4.5,
                "source": "ignored",
            }
        ]
    }


def _client(handler, rng=None):
    return RefineClient("http://refine.test/", transport=httpx.MockTransport(handler), rng=rng)


class TestRefineModels:
    """Tests for request/response models."""

    def test_request_serializes_aliases(self):
        """Test that timeout_ms goes over the wire as timeoutMs."""
        body = RefineRequest(questions=[], timeout_ms=500, heavy=True).model_dump(by_alias=True)
        assert body == {"questions": [], "timeoutMs": 500, "heavy": True}

    def test_request_accepts_alias(self):
        """Test populating the request by alias."""
        assert RefineRequest(questions=[], timeoutMs=10).timeout_ms == 10

    def test_refined_question_to_descriptor(self, refined_payload):
        """Test converting a refined question into a descriptor."""
        question = RefinedQuestion.model_validate(refined_payload["questions"][0]).to_descriptor()

        assert question.formula_id == "circulation"
        assert question.tier is Tier.VERY_HARD
        assert question.difficulty_weight == 4.5


class TestRefineClient:
    """Tests for RefineClient."""

    @pytest.mark.asyncio
    async def test_refine_success(self, originals, refined_payload):
        """Test a successful refine call posts the batch and parses the result."""
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=refined_payload)

        result = await _client(handler).refine(originals, timeout_ms=1500, heavy=True)

        assert seen["path"] == REFINE_PATH
        assert seen["body"]["timeoutMs"] == 1500
        assert seen["body"]["heavy"] is True
        assert [q["id"] for q in seen["body"]["questions"]] == [1, 2]
        assert len(result) == 1
        assert result[0].category == "GS"

    @pytest.mark.asyncio
    async def test_refine_accepts_bare_list(self, originals, refined_payload):
        """Test that a bare JSON list is treated as the questions list."""

        def handler(request):
            return httpx.Response(200, json=refined_payload["questions"])

        result = await _client(handler).refine(originals)
        assert result[0].id == 1

    @pytest.mark.asyncio
    async def test_refine_raises_on_error_status(self, originals):
        """Test that refine itself propagates HTTP errors."""

        def handler(request):
            return httpx.Response(500, json={"error": "boom"})

        with pytest.raises(httpx.HTTPStatusError):
            await _client(handler).refine(originals)

    @pytest.mark.asyncio
    async def test_refine_or_original_repairs_choices(self, originals, refined_payload, rng):
        """Test that refined items go through choice repair."""
        refined_payload["questions"][0]["choices"] = ["Other", "Heart"]

        def handler(request):
            return httpx.Response(200, json=refined_payload)

        result = await _client(handler, rng=rng).refine_or_original(originals)

        assert len(result) == 1
        assert "Heart" in result[0].choices
        assert "Other" not in result[0].choices
        assert len(result[0].choices) >= 4

    @pytest.mark.asyncio
    async def test_refine_or_original_drops_restated_items(self, originals, refined_payload, rng):
        """Test that a refined item restating another in its category is dropped."""
        first = refined_payload["questions"][0]
        refined_payload["questions"] += [
            {**first, "id": 2, "text": "Which organ pumps the blood around the body?"},
            {**first, "id": 3, "category": "PC"},
        ]

        def handler(request):
            return httpx.Response(200, json=refined_payload)

        result = await _client(handler, rng=rng).refine_or_original(originals)

        assert [q.id for q in result] == [1, 3]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, json={"error": "boom"}),
            httpx.Response(200, json={"questions": [{"id": 1}]}),
            httpx.Response(200, content=b"<html>not json</html>"),
            httpx.Response(200, json={"questions": []}),
        ],
        ids=["server-error", "invalid-body", "not-json", "empty"],
    )
    async def test_refine_or_original_falls_back(self, originals, response):
        """Test that any failure returns the original questions."""

        def handler(request):
            return response

        result = await _client(handler).refine_or_original(originals)
        assert result == originals

    @pytest.mark.asyncio
    async def test_refine_or_original_on_timeout(self, originals):
        """Test that a timeout returns the original questions."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = await _client(handler).refine_or_original(originals)
        assert result == originals

    @pytest.mark.asyncio
    async def test_empty_batch_skips_request(self):
        """Test that an empty batch never hits the server."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"questions": []})

        assert await _client(handler).refine_or_original([]) == []
        assert calls == []
