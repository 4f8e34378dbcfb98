"""
Tests for the retry combinator and the inference gateway.
"""

import pytest

from conftest import KeywordEmbedder, ScriptedLLM, analysis_json, answer_json, make_gateway, no_sleep


class TestRetryPolicy:
    def test_linear_backoff(self):
        from curator.common.retry import RetryPolicy

        policy = RetryPolicy(max_attempts=3, backoff_base=1.0)

        assert [policy.delay_for(n) for n in (1, 2)] == [1.0, 2.0]

    def test_rejects_zero_attempts(self):
        from curator.common.retry import RetryPolicy

        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_with_attempts(self):
        from curator.common.retry import RetryPolicy

        policy = RetryPolicy(max_attempts=3, backoff_base=2.0)

        assert policy.with_attempts(None) is policy
        assert policy.with_attempts(5) == RetryPolicy(max_attempts=5, backoff_base=2.0)


class TestRetryAsync:
    @pytest.mark.asyncio
    async def test_succeeds_after_failures_with_backoff(self):
        from curator.common.retry import RetryPolicy, retry_async

        attempts = []
        slept = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("reset")
            return "ok"

        async def record_sleep(seconds):
            slept.append(seconds)

        result = await retry_async(flaky, RetryPolicy(3, 1.0), sleep=record_sleep)

        assert result == "ok"
        assert len(attempts) == 3
        assert slept == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_carries_last_error(self, caplog):
        import logging
        from curator.common.errors import RetryExhausted
        from curator.common.retry import RetryPolicy, retry_async

        async def always_fails():
            raise TimeoutError("slow provider")

        with caplog.at_level(logging.WARNING, logger="curator.common.retry"):
            with pytest.raises(RetryExhausted) as info:
                await retry_async(always_fails, RetryPolicy(2, 0.0), label="Embedding generation", sleep=no_sleep)

        assert info.value.attempts == 2
        assert isinstance(info.value.last_error, TimeoutError)
        assert "Embedding generation failed after 2 attempts" in str(info.value)
        assert "attempt 1/2" in caplog.text


class TestGatewayReason:
    @pytest.mark.asyncio
    async def test_returns_stripped_text(self):
        gateway = make_gateway(reasoning=ScriptedLLM(["  the draft  "]))

        result = await gateway.reason("system", "content")

        assert result.ok
        assert result.data == "the draft"
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_empty_output_is_retried(self):
        gateway = make_gateway(reasoning=ScriptedLLM(["", "second try"]))

        result = await gateway.reason("system", "content")

        assert result.ok
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_failure_after_retries(self):
        llm = ScriptedLLM(default=RuntimeError("overloaded"))
        gateway = make_gateway(reasoning=llm)

        result = await gateway.reason("system", "content")

        assert not result.ok
        assert result.attempts == 3
        assert "Reasoning model failed after 3 attempts" in result.error
        assert len(llm.calls) == 3

    @pytest.mark.asyncio
    async def test_unconfigured_client_fails_without_calls(self):
        llm = ScriptedLLM(available=False)
        gateway = make_gateway(reasoning=llm)

        result = await gateway.reason("system", "content")

        assert not result.ok
        assert result.attempts == 0
        assert llm.calls == []


class TestGatewayStructure:
    @pytest.mark.asyncio
    async def test_validates_into_schema(self):
        from curator.common.schemas import StricterAnalysis

        llm = ScriptedLLM(["```json\n" + analysis_json(60, 0.9) + "\n```"])
        gateway = make_gateway(structuring=llm)

        result = await gateway.structure("system", "content", StricterAnalysis)

        assert result.ok
        assert result.data.score == 60
        assert result.data.quality_label.startswith("Low ROI")
        assert llm.calls[0]["json_schema"]["title"] == "StricterAnalysis"
        assert "qualityLabel" in llm.calls[0]["json_schema"]["properties"]

    @pytest.mark.asyncio
    async def test_invalid_payload_is_retried(self):
        from curator.common.schemas import StricterAnalysis

        llm = ScriptedLLM(["not json", analysis_json(150, 0.9), analysis_json(45, 0.8)])
        gateway = make_gateway(structuring=llm)

        result = await gateway.structure("system", "content", StricterAnalysis)

        assert result.ok
        assert result.attempts == 3
        assert result.data.score == 45

    @pytest.mark.asyncio
    async def test_answer_without_citations_is_retried(self):
        import json
        from curator.common.schemas import StructuredAnswer

        incomplete = json.loads(answer_json(cited=[1]))
        del incomplete["citedRecordIds"]
        llm = ScriptedLLM([json.dumps(incomplete), answer_json(cited=[4, 2])])
        gateway = make_gateway(structuring=llm)

        result = await gateway.structure("system", "content", StructuredAnswer)

        assert result.ok
        assert result.attempts == 2
        assert result.data.cited_record_ids == [4, 2]
        assert "citedRecordIds" in llm.calls[0]["json_schema"]["required"]

    @pytest.mark.asyncio
    async def test_per_call_retry_override(self):
        from curator.common.schemas import StricterAnalysis

        llm = ScriptedLLM(default="no json here")
        gateway = make_gateway(structuring=llm)

        result = await gateway.structure("system", "content", StricterAnalysis, retries=1)

        assert not result.ok
        assert result.attempts == 1
        assert "Structured generation failed" in result.error


class TestGatewayEmbed:
    @pytest.mark.asyncio
    async def test_embeds_text(self):
        gateway = make_gateway()

        result = await gateway.embed("AI agent trends")

        assert result.ok
        assert len(result.data) > 0

    @pytest.mark.asyncio
    async def test_empty_text_fails_immediately(self):
        embedder = KeywordEmbedder()
        gateway = make_gateway(embedder=embedder)

        result = await gateway.embed("   ")

        assert not result.ok
        assert embedder.calls == 0

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self):
        gateway = make_gateway(embedder=KeywordEmbedder(fail_times=2))

        result = await gateway.embed("security")

        assert result.ok
        assert result.attempts == 3


class TestGatewayFromConfig:
    def test_builds_clients_and_logs_models(self, caplog):
        import logging
        from curator.common.config import CuratorConfig
        from curator.common.inference import InferenceGateway

        config = CuratorConfig()
        config.llm.structuring_provider = "openai"
        config.llm.structuring_model = "gpt-4o-mini"
        config.inference.retries = 5

        with caplog.at_level(logging.INFO, logger="curator.common.inference"):
            gateway = InferenceGateway.from_config(config)

        assert gateway.policy.max_attempts == 5
        assert "structuring=openai:gpt-4o-mini" in caplog.text
        assert f"reasoning=anthropic:{config.llm.reasoning_model}" in caplog.text
