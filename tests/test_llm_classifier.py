"""Ollama language-model classifier tests."""

import json

import httpx
import pytest

from finmatch.schemas.classification import UserContext
from finmatch.services.llm_classifier import (
    DisabledLanguageModel,
    OllamaTransactionClassifier,
    get_language_model_classifier,
)

from tests.conftest import DINING, ENTERTAINMENT, USER_ID


def ollama(handler):
    return OllamaTransactionClassifier(
        base_url="http://ollama.test",
        model="mistral",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


def answering(text, status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/generate"
        return httpx.Response(status, json={"response": text})
    return handler


@pytest.fixture
def context(categories):
    return UserContext(user_id=USER_ID, categories=categories)


@pytest.mark.asyncio
async def test_parses_json_answer(context, make_transaction):
    clf = ollama(answering(json.dumps({
        "category_id": DINING, "category_name": "Dining Out", "confidence": "high", "explanation": "Coffee shop",
    })))
    prediction = await clf.classify(make_transaction("BLUE BOTTLE COFFEE"), context)

    assert prediction.category_id == DINING
    assert prediction.confidence == 0.9
    assert prediction.explanation == "Coffee shop"


@pytest.mark.asyncio
async def test_extracts_json_wrapped_in_prose(context, make_transaction):
    text = 'Sure! Here is my answer: {"category_id": 13, "category_name": "Entertainment", "confidence": "low"} Hope it helps.'
    prediction = await ollama(answering(text)).classify(make_transaction("STEAM GAMES"), context)

    assert prediction.category_id == ENTERTAINMENT
    assert prediction.confidence == 0.5


@pytest.mark.asyncio
async def test_unknown_id_falls_back_to_category_name(context, make_transaction):
    text = json.dumps({"category_id": 999, "category_name": "dining out", "confidence": "medium"})
    prediction = await ollama(answering(text)).classify(make_transaction("PIZZA"), context)

    assert prediction.category_id == DINING
    assert prediction.confidence == 0.7


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "text",
    [
        "I have no idea",
        json.dumps({"category_id": None, "category_name": None, "confidence": "low"}),
        json.dumps({"category_id": 999, "category_name": "Travel", "confidence": "high"}),
    ],
)
async def test_unusable_answers_give_no_signal(context, make_transaction, text):
    assert await ollama(answering(text)).classify(make_transaction("???"), context) is None


@pytest.mark.asyncio
async def test_http_error_gives_no_signal(context, make_transaction):
    assert await ollama(answering("", status=500)).classify(make_transaction("X"), context) is None


@pytest.mark.asyncio
async def test_unreachable_server_gives_no_signal(context, make_transaction):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert await ollama(handler).classify(make_transaction("X"), context) is None


@pytest.mark.asyncio
async def test_timeout_gives_no_signal(context, make_transaction):
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    assert await ollama(handler).classify(make_transaction("X"), context) is None


@pytest.mark.asyncio
async def test_no_categories_skips_the_call(make_transaction):
    def handler(request):
        raise AssertionError("should not be called")

    result = await ollama(handler).classify(make_transaction("X"), UserContext(user_id=USER_ID))
    assert result is None


def test_prompt_lists_categories_and_transaction(categories, make_transaction):
    clf = OllamaTransactionClassifier()
    prompt = clf._build_prompt(make_transaction("STEAM GAMES", "-19.99"), categories)

    assert "13: Leisure > Entertainment" in prompt
    assert 'Description: "STEAM GAMES"' in prompt
    assert "Amount: -19.99" in prompt


@pytest.mark.asyncio
async def test_is_available_checks_model_tags():
    def handler(request):
        return httpx.Response(200, json={"models": [{"name": "mistral:latest"}]})

    assert await ollama(handler).is_available() is True


@pytest.mark.asyncio
async def test_disabled_model_is_a_no_op(context, make_transaction):
    disabled = DisabledLanguageModel()
    assert await disabled.classify(make_transaction("X"), context) is None
    assert await disabled.is_available() is False


def test_factory_respects_llm_enabled(monkeypatch):
    from finmatch.config import settings

    monkeypatch.setattr(settings, "llm_enabled", False)
    assert isinstance(get_language_model_classifier(), DisabledLanguageModel)
    monkeypatch.setattr(settings, "llm_enabled", True)
    assert isinstance(get_language_model_classifier(), OllamaTransactionClassifier)
