"""
End-to-end request scenarios

Each scenario drives a request through the whole pipeline with in-memory
services:
- Healthy PM-KISAN query answered online with retrieved context
- Inference outage opening the breaker and falling back to lexical answers
- Voice transcription failure replying with a resend prompt
- Permanently failing delivery channel
- The wired application in mock-API mode
"""

import pytest

from sevak import messages
from sevak.circuit_breaker import ServiceState
from sevak.config_manager import SevakConfig
from sevak.delivery import RecordingDeliveryChannel
from sevak.error_handling import DeliveryError
from sevak.knowledge_store import InMemoryKnowledgeStore
from sevak.main import build_orchestrator
from sevak.models import (
    LanguageSource, ResponseMode, TerminalStatus, TextMessage, TextRequest, VoiceRequest
)

from tests.fixtures.fakes import (
    FakeTranscriptionService, PM_KISAN_QUERY, make_orchestrator, pm_kisan_entries
)

RECIPIENT = "+919876543210"


def pm_kisan_request(index=1):
    return TextRequest(f"req-{index}", "farmer-1", RECIPIENT, PM_KISAN_QUERY)


class TestHealthyQuery:
    """PM-KISAN query with every dependency healthy"""

    @pytest.mark.asyncio
    async def test_answered_online_with_context(self, clock, channel, metrics, inference):
        orchestrator = make_orchestrator(clock, inference=inference, channel=channel, metrics=metrics)

        context = await orchestrator.process(pm_kisan_request())

        assert context.response_mode == ResponseMode.ONLINE
        assert context.terminal_status == TerminalStatus.DELIVERED
        assert context.response_text == inference.answer
        assert channel.sent == [(RECIPIENT, TextMessage(RECIPIENT, inference.answer))]

        # Both entries above the similarity floor reach the prompt; the third does not
        prompt, _ = inference.prompts[0]
        entries = {entry.entry_id: entry for entry in pm_kisan_entries()}
        assert entries["pm-kisan-1"].answer in prompt
        assert entries["pm-kisan-2"].answer in prompt
        assert entries["ration-1"].answer not in prompt
        assert "Respond in English" in prompt


class TestInferenceOutage:
    """Inference failing on every call"""

    @pytest.mark.asyncio
    async def test_breaker_opens_and_lexical_answers(self, clock, channel, inference):
        inference.fail = True
        orchestrator = make_orchestrator(clock, inference=inference, channel=channel)
        breaker = orchestrator.fallback_chain.breaker
        expected = pm_kisan_entries()[0].answer

        first = await orchestrator.process(pm_kisan_request(1))
        assert breaker.state == ServiceState.CLOSED
        second = await orchestrator.process(pm_kisan_request(2))
        assert breaker.state == ServiceState.OPEN

        third = await orchestrator.process(pm_kisan_request(3))

        # The open breaker short-circuits the third request
        assert inference.calls == 2
        for context in (first, second, third):
            assert context.response_mode == ResponseMode.OFFLINE
            assert context.response_text == expected
            assert context.terminal_status == TerminalStatus.DELIVERED
        assert orchestrator.fallback_chain.stats['circuit_open'] == 1

    @pytest.mark.asyncio
    async def test_recovery_after_reset_interval(self, clock, channel, inference):
        inference.fail = True
        orchestrator = make_orchestrator(clock, inference=inference, channel=channel)
        breaker = orchestrator.fallback_chain.breaker
        await orchestrator.process(pm_kisan_request(1))
        await orchestrator.process(pm_kisan_request(2))
        assert breaker.state == ServiceState.OPEN

        inference.fail = False
        clock.advance(30.0)
        context = await orchestrator.process(pm_kisan_request(3))

        assert breaker.state == ServiceState.CLOSED
        assert context.response_mode == ResponseMode.ONLINE

    @pytest.mark.asyncio
    async def test_unknown_query_gets_default_answer(self, clock, channel, inference):
        inference.fail = True
        orchestrator = make_orchestrator(clock, inference=inference, channel=channel)

        context = await orchestrator.process(
            TextRequest("req-9", "farmer-1", RECIPIENT, "Tell me tomorrow's weather forecast")
        )

        assert context.response_mode == ResponseMode.OFFLINE
        assert context.response_text == messages.default_response("en")


class TestVoiceTranscriptionFailure:
    """Voice note that cannot be transcribed"""

    @pytest.mark.asyncio
    async def test_resend_prompt_without_resolution(self, clock, channel, inference):
        transcription = FakeTranscriptionService(fail=True)
        orchestrator = make_orchestrator(clock, inference=inference, transcription=transcription, channel=channel)

        context = await orchestrator.process(
            VoiceRequest("req-v", "farmer-1", RECIPIENT, "https://media.example.org/v1.ogg")
        )

        assert context.terminal_status == TerminalStatus.DELIVERED
        assert context.language == "hi"
        assert context.language_source == LanguageSource.SYSTEM_DEFAULT
        assert channel.sent == [(RECIPIENT, TextMessage(RECIPIENT, messages.transcription_failed("hi")))]
        assert inference.calls == 0
        assert orchestrator.language_detector.stats['detected'] == 0
        assert orchestrator.fallback_chain.stats['total_resolutions'] == 0


class TestDeliveryOutage:
    """Channel rejecting every send"""

    @pytest.mark.asyncio
    async def test_three_attempts_then_failure(self, clock, metrics, inference):
        channel = RecordingDeliveryChannel(always_fail=True)
        orchestrator = make_orchestrator(clock, inference=inference, channel=channel, metrics=metrics)

        with pytest.raises(DeliveryError) as exc_info:
            await orchestrator.process(pm_kisan_request())

        assert exc_info.value.attempts == 3
        assert len(channel.attempts) == 3
        assert all(interval >= 5.0 for interval in clock.sleeps)
        assert len(clock.sleeps) == 2
        assert exc_info.value.context.terminal_status == TerminalStatus.FAILED
        assert [alert['name'] for alert in metrics.alerts] == ['delivery_failed']

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, clock, inference):
        channel = RecordingDeliveryChannel(fail_first=2)
        orchestrator = make_orchestrator(clock, inference=inference, channel=channel)

        context = await orchestrator.process(pm_kisan_request())

        assert context.terminal_status == TerminalStatus.DELIVERED
        assert context.delivery_attempts == 3
        assert clock.sleeps == [5.0, 5.0]


class TestWiredApplication:
    """build_orchestrator with the API services disabled"""

    def make_services(self, knowledge_path):
        config = SevakConfig()
        config.development.mock_apis = True
        store = InMemoryKnowledgeStore.from_yaml(knowledge_path)
        return build_orchestrator(config, store, RecordingDeliveryChannel())

    @pytest.mark.asyncio
    async def test_english_query_answered_from_knowledge(self, knowledge_path):
        services = self.make_services(knowledge_path)

        context = await services.orchestrator.process(
            TextRequest("req-1", "farmer-1", RECIPIENT, "How do I check my PM-KISAN payment status?")
        )

        assert context.response_mode == ResponseMode.OFFLINE
        assert context.response_text.startswith("Open the PM-KISAN portal")
        assert services.metrics.get("requests_delivered") == 1

    @pytest.mark.asyncio
    async def test_hindi_query_answered_in_hindi(self, knowledge_path):
        services = self.make_services(knowledge_path)

        context = await services.orchestrator.process(
            TextRequest("req-2", "farmer-2", RECIPIENT, "पीएम किसान योजना क्या है?")
        )

        assert context.language == "hi"
        assert context.language_source == LanguageSource.DETECTED
        assert context.response_text.startswith("पीएम किसान योजना में")
        assert services.breakers.get("inference").state == ServiceState.CLOSED
