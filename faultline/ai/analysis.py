"""
AI Analysis - error analysis, suggested fixes and similar-error search.

Every model call goes through the AI cache first and is reported to the
usage recorder afterwards. With no provider configured every operation
returns None (or an empty list).
"""

import asyncio
import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

from faultline.ai.cache import AICacheService
from faultline.ai.provider import AIProvider
from faultline.ai.similarity import SimilarityIndex
from faultline.ai.usage import UsageRecorder, estimate_tokens
from faultline.core.config import settings
from faultline.core.errors import AIResponseError
from faultline.domain import AnalysisType, ErrorAnalysis, ErrorEvent, SimilarError, UsageRecord
from faultline.grouping import fingerprint_hash, symptom_fingerprint

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*")
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

ANALYSIS_PROMPT = """
Analyze this error and provide a detailed analysis:

Error Type: {type}
Error Message: {message}
{stack_trace}
{context}

Provide your analysis in the following JSON format:
{{
  "summary": "Brief summary of the error",
  "severity": "critical|high|medium|low",
  "category": "runtime|configuration|dependency|network|database|other",
  "possibleCauses": ["cause1", "cause2", "cause3"],
  "suggestedFixes": [
    {{
      "description": "Fix description",
      "code": "Optional code example",
      "confidence": 0.9
    }}
  ],
  "relatedErrors": ["error_id1", "error_id2"]
}}
"""

FIX_PROMPT = """
Based on this error, provide a specific fix:

Error Type: {type}
Error Message: {message}
Platform: {platform}
Environment: {environment}
{related}
Provide a concise, actionable fix that a developer can implement.
"""


def error_cache_key(event: ErrorEvent) -> str:
    """Symptom fingerprint used as the AI cache key."""
    return fingerprint_hash(symptom_fingerprint(event.type, event.message, event.platform))


def parse_json_reply(reply: str) -> Dict[str, Any]:
    """
    Pull the JSON object out of a model reply.

    Markdown fences are dropped and everything outside the outermost
    braces is ignored.

    Raises:
        AIResponseError: no parseable object in the reply
    """
    cleaned = _FENCE_RE.sub("", reply).replace("```", "")
    match = _OBJECT_RE.search(cleaned)
    if not match:
        raise AIResponseError("No JSON found in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AIResponseError(f"Failed to parse AI response: {e}") from e
    if not isinstance(data, dict):
        raise AIResponseError("AI response is not a JSON object")
    return data


def _stack_trace_text(event: ErrorEvent) -> str:
    if not event.stack_trace:
        return ""
    return json.dumps(event.stack_trace)


def build_analysis_prompt(event: ErrorEvent) -> str:
    context = {
        "platform": event.platform,
        "environment": event.environment,
        "release": event.release,
        "url": event.url,
        "method": event.method,
        "statusCode": event.status_code,
        "tags": event.tags,
        "extra": event.extra,
    }
    context = {k: v for k, v in context.items() if v is not None}
    stack_trace = _stack_trace_text(event)
    return ANALYSIS_PROMPT.format(
        type=event.type,
        message=event.message,
        stack_trace=f"Stack Trace:\n{stack_trace}" if stack_trace else "",
        context=f"Context: {json.dumps(context, indent=2, default=str)}" if context else "",
    )


def index_document(event: ErrorEvent) -> str:
    return f"Error: {event.type} - {event.message}\n{_stack_trace_text(event)}"


class AIAnalysisService:
    def __init__(
        self,
        provider: Optional[AIProvider],
        cache: AICacheService,
        index: SimilarityIndex,
        usage: Optional[UsageRecorder] = None,
        timeout: Optional[float] = None,
    ):
        self.provider = provider
        self.cache = cache
        self.index = index
        self.usage = usage
        self.timeout = timeout if timeout is not None else settings.ai_timeout_seconds

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    async def _track(self, usage: UsageRecord) -> None:
        if self.usage is not None:
            await self.usage.record(usage)

    async def _generate(self, prompt: str, max_tokens: int) -> str:
        return await asyncio.wait_for(
            self.provider.generate(prompt, temperature=0.7, max_tokens=max_tokens),
            timeout=self.timeout,
        )

    async def analyze_error(self, event: ErrorEvent) -> Optional[ErrorAnalysis]:
        """
        Structured analysis of an event, from the cache when possible.

        Returns None when AI is disabled or the call fails.
        """
        if not self.enabled:
            logger.debug("AI service not available, skipping error analysis")
            return None

        cache_key = error_cache_key(event)
        try:
            cached = await self.cache.get_cached_analysis(
                cache_key, AnalysisType.ERROR_ANALYSIS, event.project_id, respect_privacy=True
            )
            if cached:
                logger.info("♻️ Error analysis for %s served from cache", event.id)
                await self._track(UsageRecord(
                    project_id=event.project_id,
                    operation="generate",
                    feature="error_analysis_cached",
                    prompt_tokens=0,
                    completion_tokens=0,
                    latency_ms=0,
                    success=True,
                    metadata={"cacheHit": True, "tokensSaved": cached.original_tokens},
                ))
                return ErrorAnalysis.from_dict(json.loads(cached.analysis_result))

            prompt = build_analysis_prompt(event)
            prompt_tokens = estimate_tokens(prompt)
            started = time.monotonic()
            try:
                reply = await self._generate(prompt, max_tokens=1000)
                analysis = ErrorAnalysis.from_dict(parse_json_reply(reply))
            except Exception as e:
                await self._track(UsageRecord(
                    project_id=event.project_id,
                    operation="generate",
                    feature="error_analysis",
                    prompt_tokens=prompt_tokens,
                    completion_tokens=0,
                    latency_ms=int((time.monotonic() - started) * 1000),
                    success=False,
                    error_message=str(e) or type(e).__name__,
                ))
                raise

            latency_ms = int((time.monotonic() - started) * 1000)
            result = analysis.to_dict()
            completion_tokens = estimate_tokens(json.dumps(result))

            await self.cache.cache_analysis(
                cache_key,
                AnalysisType.ERROR_ANALYSIS,
                result,
                provider=self.provider.name,
                model=self.provider.model,
                prompt=prompt,
                project_id=event.project_id,
                confidence_score=0.9,
                error_patterns=[event.type, event.message],
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
            )
            await self._track(UsageRecord(
                project_id=event.project_id,
                operation="generate",
                feature="error_analysis",
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                latency_ms=latency_ms,
                success=True,
            ))
            logger.info("🧠 Error %s analyzed", event.id)
            return analysis
        except Exception as e:
            logger.error("❌ Failed to analyze error %s: %s", event.id, e)
            return None

    async def generate_suggested_fix(self, event: ErrorEvent) -> Optional[str]:
        """Free-text fix, informed by similar indexed errors."""
        if not self.enabled:
            return None

        cache_key = error_cache_key(event)
        started = time.monotonic()
        prompt = ""
        try:
            cached = await self.cache.get_cached_analysis(
                cache_key, AnalysisType.SUGGESTED_FIX, event.project_id, respect_privacy=True
            )
            if cached:
                logger.info("♻️ Suggested fix for %s served from cache", event.id)
                return json.loads(cached.analysis_result)

            similar = await self.find_similar_errors(event, limit=3)
            related = "\n".join(item.content for item in similar if item.content)
            prompt = FIX_PROMPT.format(
                type=event.type,
                message=event.message,
                platform=event.platform,
                environment=event.environment,
                related=f"\nSimilar errors seen before:\n{related}\n" if related else "",
            )
            fix = await self._generate(prompt, max_tokens=1000)
            prompt_tokens = estimate_tokens(prompt)
            completion_tokens = estimate_tokens(fix)

            await self.cache.cache_analysis(
                cache_key,
                AnalysisType.SUGGESTED_FIX,
                fix,
                provider=self.provider.name,
                model=self.provider.model,
                prompt=prompt,
                project_id=event.project_id,
                error_patterns=[event.type],
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
            )
            await self._track(UsageRecord(
                project_id=event.project_id,
                operation="generate",
                feature="suggested_fix",
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                latency_ms=int((time.monotonic() - started) * 1000),
                success=True,
            ))
            return fix
        except Exception as e:
            await self._track(UsageRecord(
                project_id=event.project_id,
                operation="generate",
                feature="suggested_fix",
                prompt_tokens=estimate_tokens(prompt),
                completion_tokens=0,
                latency_ms=int((time.monotonic() - started) * 1000),
                success=False,
                error_message=str(e) or type(e).__name__,
            ))
            logger.error("❌ Failed to generate suggested fix for %s: %s", event.id, e)
            return None

    async def find_similar_errors(self, event: ErrorEvent, limit: int = 5) -> List[SimilarError]:
        if not self.enabled:
            return []

        query = f"{event.type}: {event.message}"
        started = time.monotonic()
        try:
            [embedding] = await asyncio.wait_for(self.provider.embed([query]), timeout=self.timeout)
            results = await self.index.search(
                embedding,
                project_id=event.project_id,
                environment=event.environment,
                limit=limit,
                min_score=settings.similarity_min_score,
            )
        except Exception as e:
            await self._track(UsageRecord(
                project_id=event.project_id,
                operation="embed",
                feature="similar_errors",
                prompt_tokens=estimate_tokens(query),
                completion_tokens=0,
                latency_ms=int((time.monotonic() - started) * 1000),
                success=False,
                error_message=str(e) or type(e).__name__,
            ))
            logger.error("❌ Failed to find similar errors: %s", e)
            return []

        await self._track(UsageRecord(
            project_id=event.project_id,
            operation="embed",
            feature="similar_errors",
            prompt_tokens=estimate_tokens(query),
            completion_tokens=0,
            latency_ms=int((time.monotonic() - started) * 1000),
            success=True,
        ))
        return [item for item in results if item.event_id != event.id]

    async def index_error(self, event: ErrorEvent) -> None:
        """Embed the event and add it to the similarity index."""
        if not self.enabled:
            return

        content = index_document(event)
        started = time.monotonic()
        try:
            [embedding] = await asyncio.wait_for(self.provider.embed([content]), timeout=self.timeout)
            await self.index.upsert(
                event_id=event.id,
                project_id=event.project_id,
                environment=event.environment,
                error_type=event.type,
                content=content,
                embedding=embedding,
                metadata={
                    "source": f"error/{event.id}",
                    "type": "error",
                    "timestamp": event.timestamp.isoformat(),
                    "platform": event.platform,
                    "level": event.level.value,
                },
            )
        except Exception as e:
            await self._track(UsageRecord(
                project_id=event.project_id,
                operation="embed",
                feature="error_indexing",
                prompt_tokens=estimate_tokens(content),
                completion_tokens=0,
                latency_ms=int((time.monotonic() - started) * 1000),
                success=False,
                error_message=str(e) or type(e).__name__,
            ))
            logger.error("❌ Failed to index error %s: %s", event.id, e)
            return

        await self._track(UsageRecord(
            project_id=event.project_id,
            operation="embed",
            feature="error_indexing",
            prompt_tokens=estimate_tokens(content),
            completion_tokens=0,
            latency_ms=int((time.monotonic() - started) * 1000),
            success=True,
        ))
        logger.debug("Error %s indexed", event.id)
