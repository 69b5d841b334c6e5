"""
Refine Client.

Async HTTP client for the remote "refine" job, which takes a batch of
generated questions and returns improved versions (better wording, related
distractors). The job is slow and optional: ``refine_or_original`` never
fails, it degrades to the questions it was given.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import Any

import httpx
from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from src.adaptive.choice_generator import ensure_choices_include_answer
from src.adaptive.models import QuestionDescriptor
from src.adaptive.text_match import is_near_duplicate

REFINE_PATH = "/api/ai/refine"


# ========================================
# Request/Response Models
# ========================================


class RefineRequest(BaseModel):
    """Request body for the refine job."""

    model_config = ConfigDict(populate_by_name=True)

    questions: list[dict[str, Any]]
    timeout_ms: int = Field(30000, alias="timeoutMs", ge=0, description="Server-side time budget")
    heavy: bool = Field(False, description="Use the slower, more thorough refinement")


class RefinedQuestion(BaseModel):
    """One refined question as returned by the server."""

    model_config = ConfigDict(extra="ignore")

    id: int | str
    text: str = ""
    choices: list[Any] = Field(default_factory=list)
    answer: Any
    category: str
    formula_id: str | None = Field(None, validation_alias=AliasChoices("formula_id", "formulaId"))
    tier: str | None = Field(None, validation_alias=AliasChoices("tier", "difficulty"))
    difficulty_weight: float | None = Field(
        None, validation_alias=AliasChoices("difficulty_weight", "difficultyWeight")
    )
    keywords: list[str] = Field(default_factory=list)

    def to_descriptor(self) -> QuestionDescriptor:
        return QuestionDescriptor.from_dict(self.model_dump())


class RefineResponse(BaseModel):
    """Response body; a bare list is accepted as the questions list."""

    questions: list[RefinedQuestion]


# ========================================
# Client
# ========================================


class RefineClient:
    """
    Client for the refine endpoint.

    Args:
        base_url: Server root, e.g. http://localhost:3000
        timeout_seconds: Client-side request timeout
        transport: Optional httpx transport (tests pass httpx.MockTransport)
        rng: Random source for choice repair of refined items
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self.rng = rng or random.Random()

    async def refine(
        self,
        questions: Sequence[QuestionDescriptor],
        timeout_ms: int = 30000,
        heavy: bool = False,
    ) -> list[QuestionDescriptor]:
        """
        Send questions to the refine job.

        Raises:
            httpx.HTTPError: On transport failure, timeout, or error status
            pydantic.ValidationError: If the response body is malformed
        """
        body = RefineRequest(
            questions=[q.to_dict() for q in questions],
            timeout_ms=timeout_ms,
            heavy=heavy,
        )
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self.transport,
        ) as client:
            response = await client.post(REFINE_PATH, json=body.model_dump(by_alias=True))
            response.raise_for_status()
            payload = response.json()

        if isinstance(payload, list):
            payload = {"questions": payload}
        parsed = RefineResponse.model_validate(payload)
        return [q.to_descriptor() for q in parsed.questions]

    async def refine_or_original(
        self,
        questions: Sequence[QuestionDescriptor],
        timeout_ms: int = 30000,
        heavy: bool = False,
    ) -> list[QuestionDescriptor]:
        """
        Refine questions, falling back to the originals on any failure.

        Refined items go through choice repair before they are returned, and
        an item restating an earlier one in the same category is dropped.
        """
        originals = list(questions)
        if not originals:
            return originals

        try:
            refined = await self.refine(originals, timeout_ms=timeout_ms, heavy=heavy)
        except httpx.HTTPError as e:
            logger.warning(f"Refine request failed ({type(e).__name__}: {e}); keeping originals")
            return originals
        except (ValidationError, ValueError) as e:
            logger.warning(f"Refine response rejected ({e}); keeping originals")
            return originals

        if not refined:
            logger.warning("Refine returned no questions; keeping originals")
            return originals

        kept: list[QuestionDescriptor] = []
        for question in refined:
            if is_near_duplicate(question.text, (q.text for q in kept if q.category == question.category)):
                logger.info(f"Refined question {question.id} restates another in the batch; dropped")
                continue
            kept.append(ensure_choices_include_answer(question, rng=self.rng))

        logger.info(f"Refined {len(kept)} of {len(originals)} questions")
        return kept
