import httpx
import openai
import pytest

from iffy.exceptions import AnalysisError, QuotaExceededError, RecommendationError
from iffy.inference import recommend as recommend_module
from iffy.inference import vision as vision_module
from iffy.inference.recommend import build_recommendation_prompt, parse_recommendation
from iffy.inference.stylize import style_prompt_for
from iffy.inference.vision import parse_analysis
from iffy.profiles import GENERAL, SPONSOR
from iffy.schemas import AnalysisResult

from conftest import entry


def test_parse_analysis_accepts_expected_keys():
    result = parse_analysis('{"is_person": true, "description": "a kid", "estimated_age": 6}')
    assert result == AnalysisResult(is_person=True, description="a kid", estimated_age=6)


def test_parse_analysis_rounds_fractional_and_clamps_negative_ages():
    assert parse_analysis('{"is_person": true, "description": "x", "estimated_age": 6.6}').estimated_age == 7
    assert parse_analysis('{"is_person": false, "description": "x", "estimated_age": -3}').estimated_age == 0


def test_parse_analysis_accepts_short_keys():
    result = parse_analysis('{"is_person": true, "desc": "a kid", "age": 9}')
    assert result.description == "a kid"
    assert result.estimated_age == 9


@pytest.mark.parametrize("content", [None, "", "not json", "[1, 2]", '{"is_person": true, "estimated_age": "old"}'])
def test_parse_analysis_rejects_bad_answers(content):
    with pytest.raises(AnalysisError):
        parse_analysis(content)


def test_parse_recommendation_maps_fields():
    result = parse_recommendation('{"product_name": "Kindle", "reason": "books", "humor": "ha"}')
    assert result.selected_product_name == "Kindle"
    assert result.reason == "books"
    assert result.humor_line == "ha"


@pytest.mark.parametrize("content", [None, "{", '"text"', '{"product_name": null}'])
def test_parse_recommendation_rejects_bad_answers(content):
    with pytest.raises(RecommendationError):
        parse_recommendation(content)


def test_prompt_includes_profile_guidance():
    analysis = AnalysisResult(is_person=True, description="a student", estimated_age=17)
    prompt = build_recommendation_prompt([entry("LG gram", "0-20", brand="LG")], analysis, SPONSOR)

    assert prompt.startswith(SPONSOR.prompt_intro)
    assert SPONSOR.prompt_guidance in prompt
    assert "1. brand: LG, name: LG gram, description: LG gram description" in prompt
    assert "about 17 years old" in prompt


def test_general_prompt_has_no_sponsor_guidance():
    analysis = AnalysisResult(is_person=True, description="a kid", estimated_age=8)
    prompt = build_recommendation_prompt([entry("Lego", "6-10")], analysis, GENERAL)
    assert SPONSOR.prompt_guidance not in prompt


def test_style_prompt_templates():
    assert "12 years old" in style_prompt_for(True, 12, "a boy")
    assert "'a dog'" in style_prompt_for(False, 0, "a dog")


class RaisingCompletions:
    def __init__(self, error):
        self.error = error

    async def create(self, **kwargs):
        raise self.error


class FakeAsyncClient:
    def __init__(self, error):
        self.chat = type("Chat", (), {"completions": RaisingCompletions(error)})()


def _rate_limit_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(429, request=request)
    return openai.RateLimitError("insufficient_quota", response=response, body=None)


@pytest.mark.asyncio
async def test_vision_rate_limit_becomes_quota_error(monkeypatch):
    monkeypatch.setattr(vision_module, "get_async_client", lambda: FakeAsyncClient(_rate_limit_error()))
    with pytest.raises(QuotaExceededError):
        await vision_module.analyze_image(b"img", "image/png")


@pytest.mark.asyncio
async def test_recommendation_rate_limit_becomes_quota_error(monkeypatch):
    monkeypatch.setattr(recommend_module, "get_async_client", lambda: FakeAsyncClient(_rate_limit_error()))
    with pytest.raises(QuotaExceededError):
        await recommend_module.recommend_gift("prompt")


@pytest.mark.asyncio
async def test_vision_transport_error_becomes_analysis_error(monkeypatch):
    error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    monkeypatch.setattr(vision_module, "get_async_client", lambda: FakeAsyncClient(error))
    with pytest.raises(AnalysisError):
        await vision_module.analyze_image(b"img", "image/png")


@pytest.mark.asyncio
async def test_missing_api_key_is_a_recommendation_error(monkeypatch):
    def _no_client():
        raise RuntimeError("OPENAI_API_KEY is not set")

    monkeypatch.setattr(recommend_module, "get_async_client", _no_client)
    with pytest.raises(RecommendationError) as exc:
        await recommend_module.recommend_gift("prompt")
    assert not isinstance(exc.value, QuotaExceededError)
