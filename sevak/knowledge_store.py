"""
In-process knowledge and user preference stores

The YAML loader accepts a list of FAQ entries:

    entries:
      - id: pm-kisan-1
        question: What is PM-KISAN?
        answer: PM-KISAN is an income support scheme ...
        category: agriculture
        language: en
        keywords: [pm-kisan, farmer, income]
        embedding: [0.12, -0.03, ...]   # optional

Entries without an embedding can be embedded once at load time with
ensure_embeddings().
"""

import dataclasses
import logging
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from .error_handling import ConfigurationError
from .interfaces import EmbeddingService
from .models import KnowledgeEntry

logger = logging.getLogger(__name__)


def entry_from_dict(data: Dict[str, Any]) -> KnowledgeEntry:
    try:
        return KnowledgeEntry(
            entry_id=str(data['id']),
            question=data['question'],
            answer=data['answer'],
            category=data.get('category', 'general'),
            language=data.get('language', 'hi'),
            keywords=tuple(data.get('keywords') or ()),
            embedding=tuple(float(x) for x in (data.get('embedding') or ()))
        )
    except KeyError as e:
        raise ConfigurationError(f"Knowledge entry missing field {e}: {data}") from e


class InMemoryKnowledgeStore:
    """Read-mostly FAQ store indexed by language"""

    def __init__(self, entries: Iterable[KnowledgeEntry] = ()):
        self._entries: Dict[str, KnowledgeEntry] = {}
        self._by_language: Dict[str, List[str]] = defaultdict(list)
        for entry in entries:
            self.add(entry)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'InMemoryKnowledgeStore':
        path = Path(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load knowledge file {path}: {e}") from e

        raw_entries = data.get('entries', []) if isinstance(data, dict) else data
        store = cls(entry_from_dict(item) for item in raw_entries)
        logger.info(f"Loaded {len(store)} knowledge entries from {path}")
        return store

    def add(self, entry: KnowledgeEntry):
        if entry.entry_id not in self._entries:
            self._by_language[entry.language].append(entry.entry_id)
        self._entries[entry.entry_id] = entry

    async def entries_by_language(self, language: str) -> List[KnowledgeEntry]:
        return [self._entries[entry_id] for entry_id in self._by_language.get(language, [])]

    def all_entries(self) -> List[KnowledgeEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


async def ensure_embeddings(store: InMemoryKnowledgeStore, embedding_service: EmbeddingService) -> int:
    """Embed the question of every entry lacking a vector; returns how many were embedded"""
    embedded = 0
    for entry in store.all_entries():
        if entry.embedding:
            continue
        vector = await embedding_service.embed(entry.question)
        store.add(dataclasses.replace(entry, embedding=tuple(vector)))
        embedded += 1

    if embedded:
        logger.info(f"Embedded {embedded} knowledge entries")
    return embedded


class InMemoryPreferenceStore:
    """User language preferences and detection history"""

    def __init__(self, preferences: Optional[Dict[str, str]] = None):
        self._preferences: Dict[str, str] = dict(preferences or {})
        self._history: Dict[str, List[Dict[str, Any]]] = {}

    async def get_preferred_language(self, user_id: str) -> Optional[str]:
        return self._preferences.get(user_id)

    async def set_preferred_language(self, user_id: str, language: str) -> None:
        self._preferences[user_id] = language

    async def get_language_history(self, user_id: str) -> List[Dict[str, Any]]:
        return list(self._history.get(user_id, []))

    async def set_language_history(self, user_id: str, history: List[Dict[str, Any]]) -> None:
        self._history[user_id] = list(history)
