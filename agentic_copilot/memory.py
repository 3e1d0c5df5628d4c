"""
Associative memory for Agentic Copilot.

Stores learned facts, preferences and patterns with relevance scoring, plus a
per-domain history of successful and failed page actions. Retrieval
reinforces what it returns: every hit is marked as accessed and its relevance
grows (capped), so frequently useful memories win future lookups.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from .types import new_id
from .utils import normalize_domain, significant_words

logger = logging.getLogger("agentic_copilot.memory")

MEMORY_STORAGE_KEY = "agentic_memory"

MAX_RELEVANCE = 2.0
RELEVANCE_STEP = 0.1
MIN_SCORE = 0.1
MAX_DOMAIN_PATTERNS = 50
MAX_DOMAIN_ACTIONS_RETURNED = 10


class MemoryType(str, Enum):
    """Kind of knowledge a memory record holds."""
    FACT = "fact"
    PREFERENCE = "preference"
    PATTERN = "pattern"
    CONTEXT = "context"


@dataclass
class MemoryRecord:
    """A scored, retrievable piece of knowledge."""
    type: MemoryType
    content: str
    relevance: float = 1.0
    last_accessed: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "content": self.content,
            "relevance": self.relevance,
            "last_accessed": self.last_accessed.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryRecord":
        return cls(
            id=data["id"],
            type=MemoryType(data["type"]),
            content=data["content"],
            relevance=float(data.get("relevance", 1.0)),
            last_accessed=datetime.fromisoformat(data["last_accessed"]),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass
class DomainAction:
    """One recorded action on a domain (success or failure)."""
    action: str
    timestamp: datetime
    context: str = ""
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = {"action": self.action, "timestamp": self.timestamp.isoformat()}
        if self.error is None:
            data["context"] = self.context
        else:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DomainAction":
        return cls(
            action=data["action"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            context=data.get("context", ""),
            error=data.get("error"),
        )


@dataclass
class DomainMemory:
    """Per-website aggregate of past actions and mined keyword patterns."""
    domain: str
    patterns: list[str] = field(default_factory=list)
    successful_actions: list[DomainAction] = field(default_factory=list)
    failure_patterns: list[DomainAction] = field(default_factory=list)

    @property
    def last_activity(self) -> datetime:
        """Timestamp of the most recent recorded event."""
        stamps = [a.timestamp for a in self.successful_actions]
        stamps.extend(a.timestamp for a in self.failure_patterns)
        return max(stamps, default=datetime.min)

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "patterns": list(self.patterns),
            "successful_actions": [a.to_dict() for a in self.successful_actions],
            "failure_patterns": [a.to_dict() for a in self.failure_patterns],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DomainMemory":
        return cls(
            domain=data["domain"],
            patterns=list(data.get("patterns", [])),
            successful_actions=[DomainAction.from_dict(a) for a in data.get("successful_actions", [])],
            failure_patterns=[DomainAction.from_dict(a) for a in data.get("failure_patterns", [])],
        )


class MemoryStore:
    """Bounded associative store of memory records and domain memories.

    Single-threaded by contract: retrieval mutates records in place, so a
    multi-threaded host must serialize access.
    """

    def __init__(
        self,
        max_memories: int = 1000,
        max_domain_memories: int = 100,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the memory store.

        Args:
            max_memories: Cap on stored memory records
            max_domain_memories: Cap on tracked domains
            clock: Source of "now" (injectable for tests)
        """
        self.max_memories = max_memories
        self.max_domain_memories = max_domain_memories
        self._clock = clock
        self._memories: dict[str, MemoryRecord] = {}
        self._domains: dict[str, DomainMemory] = {}

    def __len__(self) -> int:
        return len(self._memories)

    # =========================================================================
    # Memory records
    # =========================================================================

    def add_memory(
        self,
        type: MemoryType | str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        """Store a new record with relevance 1.0 and return its id."""
        record = MemoryRecord(
            type=MemoryType(type),
            content=content,
            last_accessed=self._clock(),
            metadata=dict(metadata or {}),
        )
        self._memories[record.id] = record
        self._evict_memories()
        return record.id

    def get_memory(self, memory_id: str) -> Optional[MemoryRecord]:
        return self._memories.get(memory_id)

    def get_relevant_memories(self, query: str, limit: int = 5) -> list[MemoryRecord]:
        """Return the best matching records, highest score first.

        Every returned record is marked as accessed now and its relevance is
        bumped by 0.1 (capped at 2.0).
        """
        now = self._clock()
        query_lower = query.lower()
        scored = []
        for record in self._memories.values():
            score = self._score(record, query_lower, now)
            if score > MIN_SCORE:
                scored.append((score, record))

        # sort() is stable, so equal scores keep insertion order
        scored.sort(key=lambda item: item[0], reverse=True)
        hits = [record for _, record in scored[:limit]]

        for record in hits:
            record.last_accessed = now
            record.relevance = min(record.relevance + RELEVANCE_STEP, MAX_RELEVANCE)

        return hits

    def _score(self, record: MemoryRecord, query: str, now: datetime) -> float:
        content = record.content.lower()
        score = 0.0

        if query in content:
            score += 1.0

        query_words = query.split(" ")
        content_words = set(content.split(" "))
        overlap = sum(1 for word in query_words if word in content_words)
        score += (overlap / len(query_words)) * 0.5

        days_since_access = (now - record.last_accessed).total_seconds() / 86400
        score += max(0.0, (7 - days_since_access) / 7) * 0.2

        return score * record.relevance

    def _retention_score(self, record: MemoryRecord, now: datetime) -> float:
        age_days = max(0.0, (now - record.last_accessed).total_seconds() / 86400)
        return record.relevance / (1.0 + age_days)

    def _evict_memories(self) -> None:
        overflow = len(self._memories) - self.max_memories
        if overflow <= 0:
            return

        now = self._clock()
        ranked = sorted(
            self._memories.values(),
            key=lambda r: (self._retention_score(r, now), r.last_accessed),
        )
        for record in ranked[:overflow]:
            del self._memories[record.id]
        logger.debug(f"Evicted {overflow} memory record(s)")

    # =========================================================================
    # Learning helpers
    # =========================================================================

    def learn_from_success(self, action: str, context: str, result: str) -> str:
        """Record a pattern memory for an action that worked."""
        return self.add_memory(
            MemoryType.PATTERN,
            f"Action: {action} in context: {context} resulted in: {result}",
            {
                "type": "success_pattern",
                "action": action,
                "context": context,
                "result": result,
            },
        )

    def learn_from_failure(self, action: str, context: str, error: str) -> str:
        """Record a pattern memory for an action that failed."""
        return self.add_memory(
            MemoryType.PATTERN,
            f"Action: {action} in context: {context} failed with: {error}",
            {
                "type": "failure_pattern",
                "action": action,
                "context": context,
                "error": error,
            },
        )

    def store_user_preference(self, preference: str, value: Any) -> str:
        """Record a user preference as a preference-type memory."""
        return self.add_memory(
            MemoryType.PREFERENCE,
            f"User prefers {preference}: {json.dumps(value, default=str)}",
            {"preference": preference, "value": value},
        )

    # =========================================================================
    # Domain memory
    # =========================================================================

    def add_web_context_memory(
        self,
        domain: str,
        action: str,
        context: str,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Record an action outcome on a domain.

        Successful actions also contribute significant words to the domain's
        pattern bag. A failure without an error message is not recorded.
        """
        key = normalize_domain(domain)
        memory = self._domains.get(key)
        if memory is None:
            memory = DomainMemory(domain=key)
            self._domains[key] = memory

        now = self._clock()
        if success:
            memory.successful_actions.append(
                DomainAction(action=action, context=context, timestamp=now)
            )
            self._extract_patterns(memory, action, context)
        elif error:
            memory.failure_patterns.append(
                DomainAction(action=action, error=error, timestamp=now)
            )

        self._evict_domains()

    def get_web_context_memory(self, domain: str) -> Optional[DomainMemory]:
        return self._domains.get(normalize_domain(domain))

    def get_successful_actions_for_domain(
        self,
        domain: str,
        action_type: Optional[str] = None,
    ) -> list[DomainAction]:
        """Up to 10 successful actions on the domain, most recent first.

        Args:
            domain: Domain in any casing, with or without www./trailing slash
            action_type: Optional case-insensitive substring filter on the action
        """
        memory = self.get_web_context_memory(domain)
        if memory is None:
            return []

        actions = memory.successful_actions
        if action_type:
            needle = action_type.lower()
            actions = [a for a in actions if needle in a.action.lower()]

        ordered = sorted(actions, key=lambda a: a.timestamp, reverse=True)
        return ordered[:MAX_DOMAIN_ACTIONS_RETURNED]

    def _extract_patterns(self, memory: DomainMemory, action: str, context: str) -> None:
        known = set(memory.patterns)
        for word in significant_words(action) + significant_words(context):
            if word not in known:
                memory.patterns.append(word)
                known.add(word)

        if len(memory.patterns) > MAX_DOMAIN_PATTERNS:
            memory.patterns = memory.patterns[-MAX_DOMAIN_PATTERNS:]

    def _evict_domains(self) -> None:
        overflow = len(self._domains) - self.max_domain_memories
        if overflow <= 0:
            return

        ranked = sorted(self._domains.values(), key=lambda m: m.last_activity)
        for memory in ranked[:overflow]:
            del self._domains[memory.domain]

    # =========================================================================
    # Persistence and insight
    # =========================================================================

    def stats(self) -> dict[str, Any]:
        """Counts for insight panels."""
        by_type = {t.value: 0 for t in MemoryType}
        for record in self._memories.values():
            by_type[record.type.value] += 1
        return {
            "total_memories": len(self._memories),
            "by_type": by_type,
            "domains": len(self._domains),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "memories": [r.to_dict() for r in self._memories.values()],
            "domains": [d.to_dict() for d in self._domains.values()],
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        """Replace the store's contents with a serialized snapshot."""
        self._memories = {}
        for item in data.get("memories", []):
            record = MemoryRecord.from_dict(item)
            self._memories[record.id] = record
        self._domains = {}
        for item in data.get("domains", []):
            memory = DomainMemory.from_dict(item)
            self._domains[memory.domain] = memory
        self._evict_memories()
        self._evict_domains()

    async def save(self, storage: Any, key: str = MEMORY_STORAGE_KEY) -> None:
        """Persist records and domain memories through a Storage backend."""
        await storage.set(key, self.to_dict())
        logger.debug(f"Saved {len(self._memories)} memories to storage")

    async def load(self, storage: Any, key: str = MEMORY_STORAGE_KEY) -> bool:
        """Load a snapshot from a Storage backend.

        Returns:
            True if a snapshot was found and loaded
        """
        data = await storage.get(key)
        if not data:
            return False
        try:
            self.load_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Ignoring unreadable memory snapshot: {e}")
            return False
        logger.info(f"Loaded {len(self._memories)} memories, {len(self._domains)} domains")
        return True
