"""
Language detection for inbound text

Scores every supported language by script coverage and common-word hits.
Low-confidence detections fall back to the user's learned preference, then to
the system default. A language detected on several consecutive messages
becomes the user's preference.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Tuple

from .interfaces import UserPreferenceStore
from .models import LanguageResult, LanguageSource

logger = logging.getLogger(__name__)

CHAR_WEIGHT = 0.7
WORD_WEIGHT = 0.3
HISTORY_LIMIT = 10

# Order matters: ties keep the first language listed (Hindi before Marathi)
LANGUAGE_PATTERNS: Dict[str, Tuple[Pattern, Tuple[str, ...]]] = {
    'hi': (re.compile(r'[ऀ-ॿ]'), ('है', 'का', 'की', 'के', 'में', 'से', 'को', 'और', 'यह', 'वह')),
    'en': (re.compile(r'[a-zA-Z]'), ('the', 'is', 'are', 'was', 'were', 'in', 'on', 'at', 'to', 'for')),
    'ta': (re.compile(r'[஀-௿]'), ('இது', 'அது', 'என்ன', 'எப்படி', 'எங்கே', 'யார்', 'எப்போது')),
    'te': (re.compile(r'[ఀ-౿]'), ('ఇది', 'అది', 'ఏమి', 'ఎలా', 'ఎక్కడ', 'ఎవరు', 'ఎప్పుడు')),
    'bn': (re.compile(r'[ঀ-৿]'), ('এই', 'সেই', 'কি', 'কীভাবে', 'কোথায়', 'কে', 'কখন')),
    'mr': (re.compile(r'[ऀ-ॿ]'), ('हे', 'ते', 'काय', 'कसे', 'कुठे', 'कोण', 'केव्हा')),
    'gu': (re.compile(r'[઀-૿]'), ('આ', 'તે', 'શું', 'કેવી', 'ક્યાં', 'કોણ', 'ક્યારે')),
    'kn': (re.compile(r'[ಀ-೿]'), ('ಇದು', 'ಅದು', 'ಏನು', 'ಹೇಗೆ', 'ಎಲ್ಲಿ', 'ಯಾರು', 'ಯಾವಾಗ')),
    'ml': (re.compile(r'[ഀ-ൿ]'), ('ഇത്', 'അത്', 'എന്ത്', 'എങ്ങനെ', 'എവിടെ', 'ആര്', 'എപ്പോൾ')),
    'pa': (re.compile(r'[਀-੿]'), ('ਇਹ', 'ਉਹ', 'ਕੀ', 'ਕਿਵੇਂ', 'ਕਿੱਥੇ', 'ਕੌਣ', 'ਕਦੋਂ')),
}


@dataclass
class LanguageDetectorConfig:
    confidence_threshold: float = 0.5
    consecutive_uses_for_preference: int = 3
    default_language: str = 'hi'


def score_languages(text: str) -> Dict[str, float]:
    """Confidence per language: 0.7 x script share + 0.3 x common-word share"""
    scores = {language: 0.0 for language in LANGUAGE_PATTERNS}

    characters = [c for c in text if not c.isspace()]
    words = text.lower().split()
    if not characters:
        return scores

    for language, (script, common_words) in LANGUAGE_PATTERNS.items():
        char_matches = sum(1 for c in characters if script.match(c))
        char_score = min(char_matches / len(characters), 1.0) * CHAR_WEIGHT

        word_matches = sum(1 for word in words if any(common in word for common in common_words))
        word_score = min(word_matches / len(words), 1.0) * WORD_WEIGHT

        scores[language] = char_score + word_score

    return scores


def top_language(scores: Dict[str, float], default: str = 'hi') -> Tuple[str, float]:
    best_language, best_score = default, 0.0
    for language, score in scores.items():
        if score > best_score:
            best_language, best_score = language, score
    return best_language, best_score


class LanguageDetector:
    """Detects the request language and learns per-user preferences"""

    def __init__(
        self,
        preferences: UserPreferenceStore,
        config: Optional[LanguageDetectorConfig] = None
    ):
        self.preferences = preferences
        self.config = config or LanguageDetectorConfig()

        self.stats = {
            'detected': 0,
            'stored_preference': 0,
            'system_default': 0,
            'preferences_learned': 0
        }

    async def detect(self, text: str, user_id: str) -> LanguageResult:
        language, confidence = top_language(score_languages(text), self.config.default_language)

        if confidence >= self.config.confidence_threshold:
            await self._update_history(user_id, language)
            self.stats['detected'] += 1
            return LanguageResult(language, confidence, LanguageSource.DETECTED)

        preferred = await self.preferred_language(user_id)
        if preferred:
            self.stats['stored_preference'] += 1
            return LanguageResult(preferred, confidence, LanguageSource.STORED_PREFERENCE)

        self.stats['system_default'] += 1
        return LanguageResult(self.config.default_language, confidence, LanguageSource.SYSTEM_DEFAULT)

    async def fallback_language(self, user_id: str) -> LanguageResult:
        """Stored preference, else system default; used when detection is unavailable"""
        preferred = await self.preferred_language(user_id)
        if preferred:
            return LanguageResult(preferred, 0.0, LanguageSource.STORED_PREFERENCE)
        return LanguageResult(self.config.default_language, 0.0, LanguageSource.SYSTEM_DEFAULT)

    async def preferred_language(self, user_id: str) -> Optional[str]:
        try:
            return await self.preferences.get_preferred_language(user_id)
        except Exception as e:
            logger.error(f"Error fetching language preference for {user_id}: {e}")
            return None

    async def _update_history(self, user_id: str, language: str):
        """Append the detection and promote a language seen on consecutive messages"""
        try:
            history: List[Dict] = list(await self.preferences.get_language_history(user_id) or [])
            history.append({'language': language, 'timestamp': time.time()})
            history = history[-HISTORY_LIMIT:]
            await self.preferences.set_language_history(user_id, history)

            needed = self.config.consecutive_uses_for_preference
            recent = history[-needed:]
            if len(recent) == needed and all(d['language'] == language for d in recent):
                current = await self.preferences.get_preferred_language(user_id)
                if current != language:
                    await self.preferences.set_preferred_language(user_id, language)
                    self.stats['preferences_learned'] += 1
                    logger.info(f"Preferred language for {user_id} set to {language}")
        except Exception as e:
            # History is best effort
            logger.error(f"Error updating language history for {user_id}: {e}")

    def get_stats(self):
        return self.stats.copy()
