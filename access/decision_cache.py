"""
Decision Cache Module
=====================
Time-bounded memoization of completed access decisions.

Entries are keyed by a request fingerprint: the decision-relevant request
fields in structured form (categories sorted, so request order does not
matter), hashed to a fixed-length digest. Expiry is checked lazily at
lookup; stale entries may linger in storage but are never served.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
import structlog

from core.models import AccessDecision, AccessRequest
from core.utils import compute_hash

logger = structlog.get_logger(__name__)


DEFAULT_TTL_SECONDS = 120.0


# =============================================================================
# Fingerprint
# =============================================================================


@dataclass(frozen=True)
class RequestFingerprint:
    """Canonical, order-independent identity of an access request."""

    requester_id: str
    subject_id: str
    categories: Tuple[str, ...]
    access_type: str
    requester_role: str = ""
    purpose: str = ""
    facility_id: Optional[str] = None
    provider_id: Optional[str] = None
    service_type: Optional[str] = None
    emergency_override: bool = False

    @classmethod
    def from_request(cls, request: AccessRequest) -> "RequestFingerprint":
        return cls(
            requester_id=request.requester_id,
            subject_id=request.subject_id,
            categories=tuple(sorted(request.data_categories)),
            access_type=request.access_type.value,
            requester_role=request.requester_role,
            purpose=request.purpose,
            facility_id=request.facility_id,
            provider_id=request.provider_id,
            service_type=request.service_type,
            emergency_override=request.emergency_override,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requester_id": self.requester_id,
            "subject_id": self.subject_id,
            "categories": list(self.categories),
            "access_type": self.access_type,
            "requester_role": self.requester_role,
            "purpose": self.purpose,
            "facility_id": self.facility_id,
            "provider_id": self.provider_id,
            "service_type": self.service_type,
            "emergency_override": self.emergency_override,
        }

    @property
    def digest(self) -> str:
        # JSON keeps field boundaries, so "a_b" + "c" never collides with "a" + "b_c".
        return compute_hash(self.to_dict())


# =============================================================================
# Cache Entry & Statistics
# =============================================================================


@dataclass
class CacheEntry:
    """A memoized decision with its absolute expiry (clock seconds)."""

    decision: AccessDecision
    expires_at: float
    stored_at: float

    def is_servable(self, now: float) -> bool:
        return now < self.expires_at


@dataclass
class CacheStats:
    """Observable cache state. Never includes cached decisions."""

    size: int = 0
    keys: List[str] = field(default_factory=list)
    hits: int = 0
    misses: int = 0
    stores: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "keys": list(self.keys),
            "hits": self.hits,
            "misses": self.misses,
            "stores": self.stores,
            "hit_rate": round(self.hit_rate, 3),
        }


# =============================================================================
# Decision Cache
# =============================================================================


class DecisionCache:
    """
    Thread-safe, TTL-bounded decision memo.

    A single lock guards the entry map, so concurrent evaluations (tasks
    or threads) can look up and store freely. Stores to the same key are
    last-write-wins; unrelated keys never interfere.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize decision cache.

        Args:
            default_ttl: Entry time-to-live in seconds when store() gets none.
            clock: Monotonic time source in seconds (injectable for tests).
        """
        if default_ttl <= 0:
            raise ValueError(f"Cache TTL must be positive, got {default_ttl}")
        self.default_ttl = default_ttl
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stores = 0

    def lookup(self, fingerprint: RequestFingerprint) -> Optional[AccessDecision]:
        """Return the cached decision if its expiry is still in the future."""
        key = fingerprint.digest
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.is_servable(now):
                self._misses += 1
                return None
            self._hits += 1
            return entry.decision

    def store(
        self,
        fingerprint: RequestFingerprint,
        decision: AccessDecision,
        ttl: Optional[float] = None,
    ) -> None:
        """Store ``decision``, overwriting any existing entry for the key."""
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        entry = CacheEntry(decision=decision, expires_at=now + ttl, stored_at=now)
        key = fingerprint.digest
        with self._lock:
            self._entries[key] = entry
            self._stores += 1
        logger.debug("Decision cached", key=key[:12], ttl=ttl, allowed=decision.allowed)

    def clear(self) -> int:
        """Remove all entries. Returns the number removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Decision cache cleared", removed=count)
        return count

    def purge_expired(self) -> int:
        """Drop entries that are no longer servable. Returns the number dropped."""
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if not e.is_servable(now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Expired decisions purged", count=len(stale))
        return len(stale)

    def stats(self) -> CacheStats:
        """Entry count and key digests, plus hit/miss counters."""
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                keys=sorted(self._entries),
                hits=self._hits,
                misses=self._misses,
                stores=self._stores,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
