"""
Keyword-overlap search over the knowledge store

Offline fallback used when the model strategy is unavailable. Scores are the
fraction of query keywords found in a candidate's question, so candidates
that cover the whole query win.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence

from .interfaces import KnowledgeStore
from .models import KnowledgeEntry

logger = logging.getLogger(__name__)

STOP_WORDS: Dict[str, FrozenSet[str]] = {
    'hi': frozenset(['है', 'हैं', 'था', 'थे', 'की', 'का', 'के', 'में', 'से', 'को', 'और', 'या', 'यह', 'वह', 'इस', 'उस']),
    'en': frozenset(['the', 'is', 'are', 'was', 'were', 'a', 'an', 'in', 'on', 'at', 'to', 'for', 'of',
                     'with', 'by', 'from', 'this', 'that']),
    'ta': frozenset(['இது', 'அது', 'ஒரு', 'மற்றும்', 'அல்லது', 'என்று', 'இல்', 'உள்ள']),
    'te': frozenset(['ఇది', 'అది', 'ఒక', 'మరియు', 'లేదా', 'అని', 'లో', 'ఉన్న']),
    'bn': frozenset(['এই', 'সেই', 'একটি', 'এবং', 'বা', 'যে', 'মধ্যে', 'আছে']),
    'mr': frozenset(['हे', 'ते', 'एक', 'आणि', 'किंवा', 'की', 'मध्ये', 'आहे']),
    'gu': frozenset(['આ', 'તે', 'એક', 'અને', 'અથવા', 'કે', 'માં', 'છે']),
    'kn': frozenset(['ಇದು', 'ಅದು', 'ಒಂದು', 'ಮತ್ತು', 'ಅಥವಾ', 'ಎಂದು', 'ನಲ್ಲಿ', 'ಇದೆ']),
    'ml': frozenset(['ഇത്', 'അത്', 'ഒരു', 'ഒപ്പം', 'അല്ലെങ്കിൽ', 'എന്ന്', 'ൽ', 'ഉണ്ട്']),
    'pa': frozenset(['ਇਹ', 'ਉਹ', 'ਇੱਕ', 'ਅਤੇ', 'ਜਾਂ', 'ਕਿ', 'ਵਿੱਚ', 'ਹੈ']),
}

# Sentence punctuation trimmed from token edges (includes the Devanagari danda)
_EDGE_PUNCTUATION = '?!.,;:"\'()।॥'


def extract_keywords(text: str, language: str) -> List[str]:
    """Lower-case, split on whitespace, trim edge punctuation and drop the language's stop words"""
    stop_words = STOP_WORDS.get(language, frozenset())
    keywords = []
    for token in text.lower().split():
        token = token.strip(_EDGE_PUNCTUATION)
        if token and token not in stop_words:
            keywords.append(token)
    return keywords


def keyword_overlap(query_keywords: Sequence[str], candidate_keywords: Sequence[str]) -> float:
    """Fraction of query keywords present in the candidate; 0.0 for an empty query"""
    if not query_keywords:
        return 0.0

    candidate = set(candidate_keywords)
    matches = sum(1 for keyword in query_keywords if keyword in candidate)
    return matches / len(query_keywords)


@dataclass
class LexicalMatch:
    entry: KnowledgeEntry
    score: float


class LexicalMatcher:
    """Best keyword-overlap match for a query; thresholds are applied by the caller"""

    def __init__(self, knowledge_store: KnowledgeStore):
        self.knowledge_store = knowledge_store
        self.stats = {
            'searches': 0,
            'matches': 0,
            'no_match': 0
        }

    async def search(self, query: str, language: str) -> Optional[LexicalMatch]:
        start_time = time.time()
        self.stats['searches'] += 1

        query_keywords = extract_keywords(query, language)
        entries = await self.knowledge_store.entries_by_language(language)

        best_entry = None
        best_score = 0.0
        for entry in entries:
            score = keyword_overlap(query_keywords, extract_keywords(entry.question, language))
            if score > best_score:
                best_score = score
                best_entry = entry

        elapsed = time.time() - start_time
        if best_entry is None:
            self.stats['no_match'] += 1
            logger.debug(f"No lexical match among {len(entries)} entries ({elapsed:.3f}s)")
            return None

        self.stats['matches'] += 1
        logger.debug(f"Lexical match {best_entry.entry_id} score={best_score:.2f} ({elapsed:.3f}s)")
        return LexicalMatch(best_entry, best_score)

    def get_stats(self):
        return self.stats.copy()
