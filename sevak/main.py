#!/usr/bin/env python3
"""
Sevak Main Entry Point

Processes a single text or voice request end-to-end. It handles:
- Configuration loading
- Service construction (OpenAI, WhatsApp or a recording channel)
- Knowledge base loading and embedding
- Running the request through the orchestrator
- Printing the resolved answer

Maintenance commands run instead of a request: --cleanup-audio deletes
expired voice replies and --scheme-data queries a government data API.
"""

import asyncio
import argparse
import json
import logging
import sys
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from .circuit_breaker import CircuitBreakerRegistry
from .config_manager import ConfigManager, SevakConfig
from .delivery import RecordingDeliveryChannel, WhatsAppConfig, WhatsAppDeliveryChannel
from .error_handling import (
    ConfigurationError, DeliveryError, EmbeddingError, GovernmentDataError, InferenceError, SevakError
)
from .fallback_chain import FallbackChain
from .government_data import create_government_data_service
from .inference import InferenceGateway, OpenAIInferenceService
from .interfaces import DeliveryChannel, EmbeddingService, InferenceService, UserPreferenceStore
from .knowledge_store import InMemoryKnowledgeStore, InMemoryPreferenceStore, ensure_embeddings
from .language_detector import LanguageDetector
from .lexical_matcher import LexicalMatcher
from .metrics import CompositeMetrics, InMemoryMetrics, LoggingMetricsSink
from .models import RequestContext, TextRequest, VoiceRequest
from .orchestrator import RequestOrchestrator
from .retrieval import OpenAIEmbeddingService, create_retrieval_engine
from .structured_logging import setup_logging
from .stt import create_whisper_transcription_service
from .tts import cleanup_expired_audio, create_openai_synthesis_service

logger = logging.getLogger(__name__)

INFERENCE_SERVICE = "inference"


class DisabledEmbeddingService:
    """Embedding service used when mock_apis is set; every call fails"""

    async def embed(self, text: str) -> Sequence[float]:
        raise EmbeddingError("Embedding API disabled (mock_apis)")


class DisabledInferenceService:
    """Inference service used when mock_apis is set; every call fails"""

    async def complete(self, prompt: str, max_tokens: int, model: Optional[str] = None) -> str:
        raise InferenceError("Inference API disabled (mock_apis)")


@dataclass
class Services:
    """Everything build_orchestrator wired together"""
    orchestrator: RequestOrchestrator
    breakers: CircuitBreakerRegistry
    metrics: InMemoryMetrics
    knowledge_store: InMemoryKnowledgeStore
    embedding_service: EmbeddingService


def build_delivery_channel(config: SevakConfig, dry_run: bool) -> DeliveryChannel:
    if dry_run:
        return RecordingDeliveryChannel()

    if not (config.api.whatsapp_access_token and config.api.whatsapp_phone_number_id):
        raise ConfigurationError(
            "WHATSAPP_ACCESS_TOKEN and WHATSAPP_PHONE_NUMBER_ID are required unless --dry-run is used"
        )
    return WhatsAppDeliveryChannel(WhatsAppConfig(
        access_token=config.api.whatsapp_access_token,
        phone_number_id=config.api.whatsapp_phone_number_id,
        graph_api_base=config.api.graph_api_base,
        timeout=config.orchestrator.delivery_attempt_timeout
    ))


def build_orchestrator(
    config: SevakConfig,
    knowledge_store: InMemoryKnowledgeStore,
    delivery: DeliveryChannel,
    preferences: Optional[UserPreferenceStore] = None,
    embedding_service: Optional[EmbeddingService] = None,
    inference_service: Optional[InferenceService] = None
) -> Services:
    """Wire configured services into a RequestOrchestrator"""
    api = config.api
    mock = config.development.mock_apis

    if embedding_service is None:
        embedding_service = DisabledEmbeddingService() if mock else OpenAIEmbeddingService(
            api_key=api.openai_api_key,
            model=config.retrieval.embedding_model,
            base_url=api.openai_base_url
        )
    if inference_service is None:
        inference_service = DisabledInferenceService() if mock else OpenAIInferenceService(
            api_key=api.openai_api_key,
            base_url=api.openai_base_url,
            config=config.inference,
            organization=api.openai_org_id
        )

    if mock:
        transcription = None
        synthesis = None
    else:
        transcription = create_whisper_transcription_service(
            api.openai_api_key, config.stt, api.openai_org_id,
            media_headers={"Authorization": f"Bearer {api.whatsapp_access_token}"}
            if api.whatsapp_access_token else None
        )
        synthesis = create_openai_synthesis_service(api.openai_api_key, config.tts, api.openai_org_id)

    breakers = CircuitBreakerRegistry(config.breaker)
    chain = FallbackChain(
        retrieval_engine=create_retrieval_engine(embedding_service, knowledge_store, config.retrieval),
        inference_gateway=InferenceGateway(inference_service, config.inference),
        lexical_matcher=LexicalMatcher(knowledge_store),
        breaker=breakers.get(INFERENCE_SERVICE),
        config=config.fallback
    )

    metrics = InMemoryMetrics()
    orchestrator = RequestOrchestrator(
        transcription=transcription,
        synthesis=synthesis,
        language_detector=LanguageDetector(preferences or InMemoryPreferenceStore(), config.language),
        fallback_chain=chain,
        delivery=delivery,
        metrics=CompositeMetrics(metrics, LoggingMetricsSink()),
        config=config.orchestrator
    )
    return Services(orchestrator, breakers, metrics, knowledge_store, embedding_service)


def build_request(args: argparse.Namespace):
    request_id = f"req_{uuid.uuid4().hex[:12]}"
    recipient = args.recipient or args.user

    if args.audio:
        return VoiceRequest(
            request_id=request_id,
            user_id=args.user,
            recipient=recipient,
            audio_ref=args.audio,
            voice_reply=args.voice_reply
        )
    return TextRequest(
        request_id=request_id,
        user_id=args.user,
        recipient=recipient,
        text=args.text,
        voice_reply=args.voice_reply
    )


def parse_param(value: str) -> Tuple[str, str]:
    key, sep, param_value = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {value!r}")
    return key, param_value


async def query_scheme_data(config: SevakConfig, api_name: str, params: Dict[str, Any]) -> int:
    """Print one government data API response; 1 when it is unavailable"""
    service = create_government_data_service(config.government)
    try:
        data = await service.query(api_name, params)
    except GovernmentDataError as e:
        logger.error(f"Scheme data unavailable: {e}")
        return 1
    finally:
        await service.close()

    print(json.dumps(data, ensure_ascii=False, indent=2))
    return 0


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Sevak - answer one citizen query over text or voice",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--text",
        help="Text of the query"
    )
    source.add_argument(
        "--audio",
        help="Audio reference (URL or local file) of a voice query"
    )
    source.add_argument(
        "--cleanup-audio",
        action="store_true",
        help="Delete synthesized replies older than tts.expiration_hours and exit"
    )
    source.add_argument(
        "--scheme-data",
        metavar="API_NAME",
        help="Query a configured government data API and print its JSON"
    )

    parser.add_argument(
        "--param",
        action="append",
        type=parse_param,
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter for --scheme-data (repeatable)"
    )

    parser.add_argument(
        "--user",
        default="cli-user",
        help="User id the request belongs to"
    )

    parser.add_argument(
        "--recipient",
        help="Delivery address (defaults to the user id)"
    )

    parser.add_argument(
        "--config",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--knowledge",
        default="data/knowledge.yaml",
        help="YAML file of knowledge entries"
    )

    parser.add_argument(
        "--voice-reply",
        action="store_true",
        help="Also reply with synthesized audio"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Record outgoing messages instead of sending them"
    )

    parser.add_argument(
        "--log-level",
        help="Override the configured log level"
    )

    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main function"""
    args = parse_arguments(argv)

    # Load environment variables
    load_dotenv()

    try:
        config = ConfigManager(config_path=args.config).load_config()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    monitoring = config.monitoring
    setup_logging(
        level=args.log_level or monitoring.log_level,
        log_dir=monitoring.log_dir if monitoring.structured_file_logging else None,
        json_console=monitoring.json_console
    )

    if args.cleanup_audio:
        removed = cleanup_expired_audio(config.tts)
        print(f"Removed {removed} expired audio files from {config.tts.output_dir}")
        return 0

    if args.scheme_data:
        return await query_scheme_data(config, args.scheme_data, dict(args.param))

    try:
        store = InMemoryKnowledgeStore.from_yaml(args.knowledge)
        delivery = build_delivery_channel(config, args.dry_run)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    services = build_orchestrator(config, store, delivery)

    if not config.development.mock_apis:
        try:
            await ensure_embeddings(store, services.embedding_service)
        except EmbeddingError as e:
            logger.warning(f"Knowledge embeddings unavailable, retrieval will find nothing: {e}")

    request = build_request(args)
    exit_code = 0
    context: Optional[RequestContext] = None
    try:
        context = await services.orchestrator.process(request)
    except DeliveryError as e:
        context = e.context
        logger.error(f"Delivery failed: {e}")
        exit_code = 1
    except SevakError as e:
        logger.error(f"Request failed: {e}")
        exit_code = 1
    finally:
        if isinstance(delivery, WhatsAppDeliveryChannel):
            await delivery.close()

    if context is not None:
        mode = context.response_mode.value if context.response_mode else "none"
        print(f"[{mode}] ({context.language}) {context.response_text}")

    logger.debug(f"Metrics: {services.metrics.get_stats()}")
    return exit_code


def run():
    """Console script entry point"""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
