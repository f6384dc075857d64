import httpx
import orjson

from swingbot.config.settings import LLMConfig
from swingbot.connectors.llm_review import (
    DEFAULT_NOTES,
    AdvisoryLevel,
    LLMReviewer,
    ReviewContract,
    apply_review,
)
from swingbot.models import Instrument, Signal, SignalDirection


def _signal() -> Signal:
    return Signal(
        instrument=Instrument(symbol="TCS", security_id="11536"),
        direction=SignalDirection.LONG,
        entry_price=3_500.0,
        stop_loss=3_400.0,
        take_profit=3_750.0,
        quantity=4,
        risk_reward=2.5,
        confidence=72.0,
        holding_days_estimate=12,
        metadata={"multi_timeframe": {"score": 68.0, "trend_alignment": {"aligned": True}}},
    )


def _completion(content: str) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1_700_000_000,
        "model": "gpt-test",
        "choices": [
            {
                "index": 0,
                "finish_reason": "stop",
                "message": {"role": "assistant", "content": content},
            }
        ],
    }


class _Endpoint:
    def __init__(self, content: str = "", status_code: int = 200) -> None:
        self.content = content
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "unavailable"})
        return httpx.Response(200, json=_completion(self.content))


def _reviewer(endpoint: _Endpoint, **overrides) -> LLMReviewer:
    data = dict(enabled=True, api_key="sk-test", retry_backoff_sec=0.0)
    data.update(overrides)
    return LLMReviewer(LLMConfig(**data), transport=httpx.MockTransport(endpoint))


class TestReviewContract:
    def test_parses_fenced_json(self) -> None:
        raw = 'Here you go:\n```json\n{"advisory_level": "warning", "confidence_adjustment": -4, "notes": "RSI stretched"}\n```'
        contract = ReviewContract.parse(raw)
        assert contract.advisory_level is AdvisoryLevel.WARNING
        assert contract.confidence_adjustment == -4
        assert contract.notes == "RSI stretched"

    def test_parses_json_embedded_in_prose(self) -> None:
        raw = 'Review: {"advisory_level": "BLOCK_AUTO", "confidence_adjustment": 0, "notes": "results day"} thanks'
        contract = ReviewContract.parse(raw)
        assert contract.blocks_auto

    def test_adjustment_is_clamped(self) -> None:
        assert ReviewContract.parse('{"confidence_adjustment": 25}').confidence_adjustment == 10
        assert ReviewContract(AdvisoryLevel.INFO, -40).confidence_adjustment == -10

    def test_non_finite_adjustment_is_ignored(self) -> None:
        contract = ReviewContract.parse(
            '{"advisory_level": "warning", "confidence_adjustment": "inf", "notes": "x"}'
        )
        assert contract.advisory_level is AdvisoryLevel.WARNING
        assert contract.confidence_adjustment == 0
        assert ReviewContract.parse('{"confidence_adjustment": 1e400}').confidence_adjustment == 0
        assert ReviewContract.parse('{"confidence_adjustment": "nan"}').confidence_adjustment == 0
        assert ReviewContract(AdvisoryLevel.INFO, float("-inf")).confidence_adjustment == -10

    def test_invalid_level_becomes_info(self) -> None:
        contract = ReviewContract.parse('{"advisory_level": "reject", "confidence_adjustment": "n/a"}')
        assert contract.advisory_level is AdvisoryLevel.INFO
        assert contract.confidence_adjustment == 0

    def test_unparseable_reply_gives_default(self) -> None:
        contract = ReviewContract.parse("I think this trade looks fine.")
        assert contract == ReviewContract.default()
        assert contract.notes == DEFAULT_NOTES
        assert ReviewContract.parse("{not json}").notes == DEFAULT_NOTES


class TestApplyReview:
    def test_review_only_adds_friction(self) -> None:
        block = ReviewContract(AdvisoryLevel.BLOCK_AUTO)
        warning = ReviewContract(AdvisoryLevel.WARNING, -10)
        assert apply_review(False, block) is True
        assert apply_review(True, warning) is True
        assert apply_review(False, warning) is False
        assert apply_review(True, None) is True


class TestLLMReviewer:
    def test_disabled_returns_default_without_calling(self) -> None:
        endpoint = _Endpoint('{"advisory_level": "block_auto"}')
        assert _reviewer(endpoint, enabled=False).review(_signal()) == ReviewContract.default()
        assert _reviewer(endpoint, api_key="").review(_signal()) == ReviewContract.default()
        assert endpoint.requests == []

    def test_review_posts_prompt_and_parses_reply(self) -> None:
        endpoint = _Endpoint('```json\n{"advisory_level": "warning", "confidence_adjustment": 3, "notes": "ok"}\n```')
        contract = _reviewer(endpoint, model="gpt-test").review(_signal(), {"notes": "breakout"})

        assert contract.advisory_level is AdvisoryLevel.WARNING
        assert contract.confidence_adjustment == 3
        [request] = endpoint.requests
        assert request.url.path.endswith("/chat/completions")
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = orjson.loads(request.content)
        assert body["model"] == "gpt-test"
        prompt = body["messages"][0]["content"]
        assert "Symbol: TCS" in prompt
        assert "Multi-timeframe score: 68.0" in prompt
        assert "CANNOT approve or reject" in prompt

    def test_http_failure_retries_then_defaults(self) -> None:
        endpoint = _Endpoint(status_code=503)
        contract = _reviewer(endpoint, retry_attempts=2).review(_signal())
        assert contract == ReviewContract.default()
        assert len(endpoint.requests) == 3

    def test_malformed_completion_defaults(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": []})

        reviewer = LLMReviewer(
            LLMConfig(enabled=True, api_key="sk-test", retry_attempts=0),
            transport=httpx.MockTransport(handler),
        )
        assert reviewer.review(_signal()) == ReviewContract.default()
