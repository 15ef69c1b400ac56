"""
AI Analysis Cache - serve earlier AI results instead of calling the model again.

Entries are keyed by (fingerprint_hash, analysis_type). A project only
sees private entries it has used before; entries for common runtime or
framework errors are public and shared across projects.
"""

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from faultline.core.background import BackgroundTasks
from faultline.core.config import settings
from faultline.core.db import utcnow
from faultline.domain import AICacheEntry, AnalysisType
from faultline.stores.cache import AICacheStore

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8

# Generic signatures that carry nothing project-specific.
PUBLIC_ERROR_PATTERNS = (
    # Runtime errors
    "TypeError", "ReferenceError", "SyntaxError", "RangeError",
    # Common library errors
    "Cannot read property", "undefined is not", "null is not",
    # Generic network/database errors
    "ECONNREFUSED", "ETIMEDOUT", "connection timeout",
    # HTTP statuses
    "404", "500", "502", "503",
    # Framework names
    "react", "vue", "angular", "express", "django", "rails",
    "laravel", "symfony", "spring", "fastapi",
)


def prompt_hash(prompt: str) -> str:
    """First 16 hex chars of SHA-256 over the trimmed, lower-cased prompt."""
    digest = hashlib.sha256(prompt.strip().lower().encode("utf-8")).hexdigest()
    return digest[:16]


def is_public_error(patterns: Sequence[str]) -> bool:
    text = " ".join(patterns).lower()
    return any(pattern.lower() in text for pattern in PUBLIC_ERROR_PATTERNS)


def cost_cents(tokens: int) -> int:
    return round(tokens * settings.ai_cost_per_1k_tokens_cents / 1000)


class AICacheService:
    def __init__(self, store: AICacheStore, background: BackgroundTasks):
        self.store = store
        self.background = background

    async def get_cached_analysis(
        self,
        fingerprint_hash: str,
        analysis_type: AnalysisType,
        project_id: Optional[str] = None,
        respect_privacy: bool = True,
    ) -> Optional[AICacheEntry]:
        """
        Best visible entry, or None.

        A hit schedules the usage write-back in the background; the caller
        never waits for it and a failed write-back only loses a counter.
        """
        entry = await self.store.lookup(fingerprint_hash, analysis_type, project_id, respect_privacy)
        if entry is None:
            return None

        tokens = entry.original_tokens
        self.background.spawn(
            self.store.record_usage(
                entry.id,
                project_id,
                tokens_saved=tokens,
                cost_saved_cents=cost_cents(tokens),
                used_at=utcnow(),
            ),
            name=f"ai-cache-usage-{fingerprint_hash[:12]}",
        )
        return entry

    async def cache_analysis(
        self,
        fingerprint_hash: str,
        analysis_type: AnalysisType,
        result: Any,
        *,
        provider: str,
        model: str,
        prompt: str,
        project_id: str,
        confidence_score: Optional[float] = None,
        is_public: Optional[bool] = None,
        error_patterns: Optional[List[str]] = None,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> AICacheEntry:
        patterns = list(error_patterns or [])
        public = is_public if is_public is not None else is_public_error(patterns)
        now = utcnow()
        entry = AICacheEntry(
            fingerprint_hash=fingerprint_hash,
            analysis_type=analysis_type,
            provider=provider,
            model=model,
            analysis_result=json.dumps(result),
            prompt_hash=prompt_hash(prompt),
            confidence_score=confidence_score if confidence_score is not None else DEFAULT_CONFIDENCE,
            is_public=public,
            error_patterns=patterns,
            created_at=now,
            last_used_at=now,
            usage_count=1,
            projects_used=[project_id],
            feedback_count=0,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
        stored = await self.store.insert(entry)
        logger.info(
            "💾 AI analysis cached: %s %s (public=%s)",
            analysis_type.value, fingerprint_hash[:12], public,
        )
        return stored

    async def submit_feedback(
        self, fingerprint_hash: str, analysis_type: AnalysisType, score: float
    ) -> int:
        """Fold a [0, 5] score into the running average; returns rows updated."""
        return await self.store.apply_feedback(fingerprint_hash, analysis_type, score)

    async def get_cache_stats(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "totalCacheHits": 0,
            "totalTokensSaved": 0,
            "totalCostSavedCents": 0,
            "byAnalysisType": {},
            "byProvider": {},
        }
        for row in await self.store.stats(start, end):
            stats["totalCacheHits"] += row["hits"]
            stats["totalTokensSaved"] += row["tokens_saved"]
            stats["totalCostSavedCents"] += row["cost_saved_cents"]
            for bucket, key in (("byAnalysisType", row["analysis_type"]), ("byProvider", row["provider"])):
                totals = stats[bucket].setdefault(key, {"hits": 0, "tokensSaved": 0, "costSavedCents": 0})
                totals["hits"] += row["hits"]
                totals["tokensSaved"] += row["tokens_saved"]
                totals["costSavedCents"] += row["cost_saved_cents"]
        return stats
