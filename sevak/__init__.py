"""
Sevak - Citizen Query Assistant

Answers text and voice queries over WhatsApp with:
- Whisper speech-to-text and OpenAI speech synthesis
- Language detection with learned user preferences
- Model answers grounded in retrieved knowledge entries
- Keyword-overlap offline answers when the model is unavailable
- Circuit breaker protection for the model dependency
- Bounded-retry delivery
- Cached government scheme data lookups
"""

__version__ = "1.0.0"

from .models import (
    InputKind, ResponseMode, LanguageSource, RequestStage, TerminalStatus,
    TextRequest, VoiceRequest, KnowledgeEntry, LanguageResult, TranscriptionResult,
    AudioResult, SendResult, TextMessage, AudioMessage, RequestContext
)
from .error_handling import (
    ErrorCategory, SevakError, TranscriptionError, SynthesisError, InferenceError,
    EmbeddingError, DeliveryError, CircuitBreakerOpenError, StageTimeoutError,
    RequestValidationError, RequestCancelledError, ConfigurationError, ReminderError,
    GovernmentDataError, with_timeout
)
from .circuit_breaker import (
    CircuitBreaker, CircuitBreakerConfig, CircuitBreakerRegistry, ServiceState,
    create_circuit_breaker
)
from .retrieval import (
    RetrievalEngine, RetrievalConfig, EmbeddingCache, ContextResult, ScoredEntry,
    OpenAIEmbeddingService, cosine_similarity, create_retrieval_engine
)
from .lexical_matcher import LexicalMatcher, LexicalMatch, extract_keywords, keyword_overlap
from .inference import InferenceGateway, InferenceConfig, OpenAIInferenceService, build_prompt
from .fallback_chain import FallbackChain, FallbackConfig
from .language_detector import LanguageDetector, LanguageDetectorConfig
from .delivery import (
    RetryingSender, DeliveryOutcome, WhatsAppConfig, WhatsAppDeliveryChannel,
    RecordingDeliveryChannel
)
from .government_data import GovernmentDataService, GovernmentDataConfig, create_government_data_service
from .knowledge_store import InMemoryKnowledgeStore, InMemoryPreferenceStore, ensure_embeddings
from .reminders import (
    ReminderService, Reminder, ReminderStatus, ReminderResult, InMemoryReminderStore,
    CreateReminder, CancelReminder, ListReminders, DeliverReminder
)
from .metrics import InMemoryMetrics, LoggingMetricsSink, CompositeMetrics
from .orchestrator import RequestOrchestrator, OrchestratorConfig, validate_request
from .structured_logging import SevakLogger, setup_logging, request_log_context
from .config_manager import ConfigManager, SevakConfig, EnvironmentType, load_config, get_config_manager
