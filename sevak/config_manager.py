"""
Sevak - Configuration Management

Provides configuration management with:
- YAML-based configuration files
- Environment variable overrides
- Configuration validation
- Multiple environment profiles (development, production, testing)
- Secure API key handling
- Sensible defaults and fallbacks

Usage:
    config_manager = ConfigManager()
    config = config_manager.load_config()

    # Access configuration
    api_key = config.api.openai_api_key
    floor = config.fallback.model_confidence_floor
"""

import os
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import yaml

from .circuit_breaker import CircuitBreakerConfig
from .error_handling import ConfigurationError
from .fallback_chain import FallbackConfig
from .government_data import GovernmentDataConfig
from .inference import InferenceConfig
from .language_detector import LanguageDetectorConfig
from .models import SUPPORTED_LANGUAGES
from .orchestrator import OrchestratorConfig
from .retrieval import RetrievalConfig
from .stt import STTConfig
from .tts import TTSConfig

logger = logging.getLogger(__name__)


class EnvironmentType(Enum):
    """Environment types for configuration profiles"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


@dataclass
class APIConfig:
    """API keys and endpoints"""
    openai_api_key: Optional[str] = None
    openai_org_id: Optional[str] = None
    openai_base_url: Optional[str] = None

    # WhatsApp Cloud API
    whatsapp_access_token: Optional[str] = None
    whatsapp_phone_number_id: Optional[str] = None
    graph_api_base: str = "https://graph.facebook.com/v19.0"


@dataclass
class MonitoringConfig:
    """Logging and monitoring configuration"""
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    structured_file_logging: bool = True
    json_console: bool = False


@dataclass
class DevelopmentConfig:
    """Development-specific configuration"""
    mock_apis: bool = False


@dataclass
class SevakConfig:
    """Complete Sevak configuration"""
    environment: EnvironmentType = EnvironmentType.DEVELOPMENT
    api: APIConfig = field(default_factory=APIConfig)
    breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    language: LanguageDetectorConfig = field(default_factory=LanguageDetectorConfig)
    stt: STTConfig = field(default_factory=STTConfig)
    tts: TTSConfig = field(default_factory=TTSConfig)
    government: GovernmentDataConfig = field(default_factory=GovernmentDataConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    development: DevelopmentConfig = field(default_factory=DevelopmentConfig)

    version: str = "1.0.0"
    name: str = "Sevak"


SECTION_TYPES = {
    'api': APIConfig,
    'breaker': CircuitBreakerConfig,
    'retrieval': RetrievalConfig,
    'inference': InferenceConfig,
    'fallback': FallbackConfig,
    'orchestrator': OrchestratorConfig,
    'language': LanguageDetectorConfig,
    'stt': STTConfig,
    'tts': TTSConfig,
    'government': GovernmentDataConfig,
    'monitoring': MonitoringConfig,
    'development': DevelopmentConfig,
}


def _parse_bool(value: str) -> bool:
    return value.lower() in ('true', '1', 'yes')


class ConfigManager:
    """
    Configuration management for Sevak

    Features:
    - YAML-based configuration with environment overrides
    - Multiple environment profiles
    - Validation that reports every problem at once
    - Secure API key handling from the environment
    """

    def __init__(self, config_path: Optional[str] = None, environment: Optional[EnvironmentType] = None):
        self.config_path = config_path or self._get_default_config_path()
        self.environment = environment or self._detect_environment()

        self._config: Optional[SevakConfig] = None

    def _get_default_config_path(self) -> str:
        """Get the default configuration file path"""
        return os.path.join(os.path.dirname(__file__), '..', 'config', 'sevak.yaml')

    def _detect_environment(self) -> EnvironmentType:
        """Detect the current environment"""
        env_name = os.getenv('SEVAK_ENV', 'development').lower()

        try:
            return EnvironmentType(env_name)
        except ValueError:
            logger.warning(f"Unknown environment '{env_name}', defaulting to development")
            return EnvironmentType.DEVELOPMENT

    def _load_yaml_config(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        if not os.path.exists(config_path):
            logger.warning(f"Configuration file not found: {config_path}")
            return {}

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration from {config_path}: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
        return config_data

    def _apply_environment_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment-specific overrides"""
        # Load environment-specific config file
        env_config_path = self.config_path.replace('.yaml', f'.{self.environment.value}.yaml')
        if env_config_path != self.config_path and os.path.exists(env_config_path):
            env_config = self._load_yaml_config(env_config_path)
            config_data = self._deep_merge(config_data, env_config)

        # Apply environment variable overrides
        env_overrides = self._get_environment_variable_overrides()
        if env_overrides:
            config_data = self._deep_merge(config_data, env_overrides)

        return config_data

    def _get_environment_variable_overrides(self) -> Dict[str, Any]:
        """Get configuration overrides from environment variables"""
        overrides: Dict[str, Any] = {}

        # API keys
        api_overrides = {}
        if openai_key := os.getenv('OPENAI_API_KEY'):
            api_overrides['openai_api_key'] = openai_key
        if openai_org := os.getenv('OPENAI_ORG_ID'):
            api_overrides['openai_org_id'] = openai_org
        if openai_base := os.getenv('OPENAI_BASE_URL'):
            api_overrides['openai_base_url'] = openai_base
        if whatsapp_token := os.getenv('WHATSAPP_ACCESS_TOKEN'):
            api_overrides['whatsapp_access_token'] = whatsapp_token
        if phone_number_id := os.getenv('WHATSAPP_PHONE_NUMBER_ID'):
            api_overrides['whatsapp_phone_number_id'] = phone_number_id

        if api_overrides:
            overrides['api'] = api_overrides

        if government_key := os.getenv('GOVERNMENT_API_KEY'):
            overrides['government'] = {'api_key': government_key}

        # Mock APIs
        if mock_apis := os.getenv('SEVAK_MOCK_APIS'):
            overrides['development'] = {'mock_apis': _parse_bool(mock_apis)}

        # Log level
        if log_level := os.getenv('LOG_LEVEL'):
            overrides['monitoring'] = {'log_level': log_level.upper()}

        return overrides

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _create_config_from_dict(self, config_data: Dict[str, Any]) -> SevakConfig:
        """Create SevakConfig from dictionary data"""
        sections = {}
        for section_name, section_type in SECTION_TYPES.items():
            section_data = config_data.get(section_name) or {}
            try:
                sections[section_name] = section_type(**section_data)
            except TypeError as e:
                raise ConfigurationError(f"Invalid '{section_name}' section: {e}") from e

        config = SevakConfig(environment=self.environment, **sections)

        if 'version' in config_data:
            config.version = str(config_data['version'])
        if 'name' in config_data:
            config.name = config_data['name']

        return config

    def _validate_config(self, config: SevakConfig) -> None:
        """Validate configuration for completeness and correctness"""
        errors = []

        # API keys are only needed when talking to real services
        if not config.development.mock_apis:
            if not config.api.openai_api_key:
                errors.append("OpenAI API key is required")

        # Thresholds
        for label, value in [
            ("fallback.model_confidence_floor", config.fallback.model_confidence_floor),
            ("fallback.lexical_score_floor", config.fallback.lexical_score_floor),
            ("fallback.retrieval_min_similarity", config.fallback.retrieval_min_similarity),
            ("retrieval.min_similarity", config.retrieval.min_similarity),
            ("inference.model_confidence", config.inference.model_confidence),
            ("language.confidence_threshold", config.language.confidence_threshold),
        ]:
            if not 0 <= value <= 1:
                errors.append(f"{label} must be between 0 and 1")

        if config.breaker.failure_rate_threshold <= 0:
            errors.append("breaker.failure_rate_threshold must be positive")

        # Timeout values
        for label, value in [
            ("breaker.window_seconds", config.breaker.window_seconds),
            ("breaker.reset_interval", config.breaker.reset_interval),
            ("fallback.retrieval_timeout", config.fallback.retrieval_timeout),
            ("fallback.inference_timeout", config.fallback.inference_timeout),
            ("fallback.lexical_timeout", config.fallback.lexical_timeout),
            ("inference.timeout", config.inference.timeout),
            ("orchestrator.transcription_timeout", config.orchestrator.transcription_timeout),
            ("orchestrator.language_detection_timeout", config.orchestrator.language_detection_timeout),
            ("orchestrator.resolving_timeout", config.orchestrator.resolving_timeout),
            ("orchestrator.synthesis_timeout", config.orchestrator.synthesis_timeout),
            ("orchestrator.delivery_attempt_timeout", config.orchestrator.delivery_attempt_timeout),
            ("orchestrator.request_deadline", config.orchestrator.request_deadline),
            ("stt.timeout", config.stt.timeout),
            ("tts.timeout", config.tts.timeout),
            ("government.timeout", config.government.timeout),
            ("government.cache_ttl_seconds", config.government.cache_ttl_seconds),
        ]:
            if value <= 0:
                errors.append(f"{label} must be positive")

        if config.orchestrator.retry_interval < 0:
            errors.append("orchestrator.retry_interval must not be negative")

        # Attempt budgets
        if config.orchestrator.max_delivery_attempts < 1:
            errors.append("orchestrator.max_delivery_attempts must be at least 1")
        if config.stt.max_attempts < 1:
            errors.append("stt.max_attempts must be at least 1")
        if config.tts.max_attempts < 1:
            errors.append("tts.max_attempts must be at least 1")

        # Retrieval and model settings
        if config.retrieval.retrieval_k <= 0:
            errors.append("retrieval.retrieval_k must be positive")
        if config.fallback.retrieval_k <= 0:
            errors.append("fallback.retrieval_k must be positive")
        if config.inference.max_tokens <= 0:
            errors.append("inference.max_tokens must be positive")
        if not 0 <= config.inference.temperature <= 2:
            errors.append("inference.temperature must be between 0 and 2")

        if config.language.default_language not in SUPPORTED_LANGUAGES:
            errors.append(f"Unsupported default language: {config.language.default_language}")
        if config.language.consecutive_uses_for_preference < 1:
            errors.append("language.consecutive_uses_for_preference must be at least 1")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def load_config(self) -> SevakConfig:
        """Load and validate configuration"""
        logger.info(f"Loading configuration from {self.config_path}")

        config_data = self._load_yaml_config(self.config_path)

        # Without a configuration file nothing external can be reached safely
        if not config_data:
            config_data = {'development': {'mock_apis': True}}

        config_data = self._apply_environment_overrides(config_data)
        config = self._create_config_from_dict(config_data)
        self._validate_config(config)

        self._config = config

        logger.info(f"Configuration loaded successfully for {self.environment.value} environment")
        return config

    def get_config(self) -> SevakConfig:
        """Get the current configuration, loading if necessary"""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(self) -> SevakConfig:
        """Reload configuration from file"""
        logger.info("Reloading configuration...")
        self._config = None
        return self.load_config()


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_path: Optional[str] = None) -> ConfigManager:
    """Get the global configuration manager instance"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_path=config_path)
    return _config_manager


def load_config(config_path: Optional[str] = None,
                environment: Optional[EnvironmentType] = None) -> SevakConfig:
    """Load a configuration without touching the global manager"""
    return ConfigManager(config_path=config_path, environment=environment).load_config()


__all__ = [
    'ConfigManager',
    'SevakConfig',
    'APIConfig',
    'MonitoringConfig',
    'DevelopmentConfig',
    'EnvironmentType',
    'ConfigurationError',
    'get_config_manager',
    'load_config',
]
