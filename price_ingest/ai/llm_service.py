"""LLM service for OpenAI integration and structured output parsing."""

import asyncio
import hashlib
import json
import logging
import random
import re
from typing import Any, Dict, Optional

import openai
import redis.asyncio as redis
from openai import AsyncOpenAI

from price_ingest.ai.errors import LLMResponseError
from price_ingest.config import settings
from price_ingest.metrics import llm_calls_total

logger = logging.getLogger(__name__)

# Errors worth another attempt; everything else (auth, bad request) is final
RETRYABLE_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)

_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_FIRST_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_json_response(response_text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model response.
    
    Code fences are stripped first. When strict parsing fails, the first
    {...} span in the text is tried before giving up.
    
    Raises:
        LLMResponseError: if no JSON object can be recovered
    """
    cleaned = _CODE_FENCE.sub("", response_text or "").strip()

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _FIRST_OBJECT.search(cleaned)
        if not match:
            raise LLMResponseError(
                f"Could not parse JSON from response: {cleaned[:200]}", response_text
            )
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise LLMResponseError(
                f"Invalid JSON response from LLM: {e}", response_text
            ) from e

    if not isinstance(parsed, dict):
        raise LLMResponseError(
            f"Expected a JSON object, got {type(parsed).__name__}", response_text
        )
    return parsed


class LLMService:
    """
    Service for LLM interactions with OpenAI.
    
    Features:
    - OpenAI chat completions
    - Structured JSON output
    - Caching (Redis-based)
    - Retries with exponential backoff for transient errors
    """

    def __init__(self):
        self._client: Optional[AsyncOpenAI] = None
        self._redis: Optional[redis.Redis] = None
        self._call_count: int = 0
        self._retry_count: int = 0

    async def _get_client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            if not settings.openai_api_key:
                raise ValueError("OpenAI API key not configured")
            # Retries are ours, not the SDK's, so backoff is visible in our logs
            self._client = AsyncOpenAI(api_key=settings.openai_api_key, max_retries=0)
        return self._client

    async def _get_redis(self) -> Optional[redis.Redis]:
        """Get or create Redis connection for caching."""
        if not settings.llm_cache_enabled:
            return None

        if self._redis is None:
            try:
                self._redis = await redis.from_url(
                    settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
            except Exception as e:
                logger.warning(f"Failed to connect to Redis for LLM cache: {e}")
                return None
        return self._redis

    def _get_cache_key(self, prompt: str, system_prompt: str, model: str, json_mode: bool) -> str:
        """Generate cache key for prompt."""
        combined = f"{system_prompt}:{prompt}:{model}:{json_mode}"
        key_hash = hashlib.sha256(combined.encode('utf-8')).hexdigest()
        return f"llm_cache:{key_hash}"

    async def _cache_get(self, key: str) -> Optional[str]:
        redis_client = await self._get_redis()
        if not redis_client:
            return None
        try:
            return await redis_client.get(key)
        except redis.RedisError as e:
            logger.warning(f"LLM cache read failed: {e}")
            return None

    async def _cache_set(self, key: str, value: str):
        redis_client = await self._get_redis()
        if not redis_client:
            return
        try:
            await redis_client.setex(key, settings.llm_cache_ttl_seconds, value)
        except redis.RedisError as e:
            logger.warning(f"LLM cache write failed: {e}")

    async def call_llm(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: Optional[float] = None,
        model: Optional[str] = None,
        use_cache: bool = True,
        json_mode: bool = False,
        operation: str = "generic",
    ) -> str:
        """
        Call LLM with a prompt and return text response.
        
        Args:
            prompt: User prompt
            system_prompt: System prompt/instructions
            temperature: Temperature (defaults to settings.llm_temperature)
            model: Model name (defaults to settings.llm_model)
            use_cache: Whether to use cache
            json_mode: Ask the API for a JSON object response
            operation: Label for metrics
            
        Returns:
            LLM response text
        """
        model = model or settings.llm_model
        temperature = temperature if temperature is not None else settings.llm_temperature

        cache_key = self._get_cache_key(prompt, system_prompt, model, json_mode)
        if use_cache and settings.llm_cache_enabled:
            cached = await self._cache_get(cache_key)
            if cached:
                logger.debug(f"LLM cache hit for prompt: {prompt[:50]}...")
                llm_calls_total.labels(operation=operation, status="cached").inc()
                return cached

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": settings.llm_max_tokens,
            "timeout": settings.llm_timeout_seconds,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        client = await self._get_client()
        max_attempts = max(1, settings.llm_max_retries + 1)

        for attempt in range(max_attempts):
            try:
                response = await client.chat.completions.create(**request)
                break
            except RETRYABLE_ERRORS as e:
                if attempt >= max_attempts - 1:
                    llm_calls_total.labels(operation=operation, status="error").inc()
                    logger.error(f"LLM API call failed after {max_attempts} attempts: {e}")
                    raise
                wait_time = (2 ** attempt) * settings.llm_retry_base_delay + random.uniform(
                    0, settings.llm_retry_base_delay
                )
                self._retry_count += 1
                logger.warning(
                    f"Retry {attempt + 1}/{max_attempts - 1} for LLM {operation} "
                    f"after {type(e).__name__}; waiting {wait_time:.1f}s"
                )
                await asyncio.sleep(wait_time)
            except Exception as e:
                llm_calls_total.labels(operation=operation, status="error").inc()
                logger.error(f"LLM API call failed: {e}")
                raise

        result = response.choices[0].message.content or ""
        self._call_count += 1
        llm_calls_total.labels(operation=operation, status="ok").inc()

        if use_cache and settings.llm_cache_enabled and result:
            await self._cache_set(cache_key, result)

        return result

    async def call_llm_json(
        self,
        prompt: str,
        system_prompt: str = "",
        operation: str = "generic",
        use_cache: bool = True,
    ) -> Dict[str, Any]:
        """
        Call LLM expecting a JSON object back.
        
        Returns:
            Parsed JSON response as dictionary
            
        Raises:
            LLMResponseError: if the response holds no parseable JSON object
        """
        response_text = await self.call_llm(
            prompt=prompt,
            system_prompt=system_prompt,
            json_mode=True,
            operation=operation,
            use_cache=use_cache,
        )
        try:
            return parse_json_response(response_text)
        except LLMResponseError:
            logger.error(f"Failed to parse LLM JSON for {operation}: {response_text[:200]}")
            raise

    def get_stats(self) -> Dict[str, Any]:
        """
        Get LLM service statistics.
        
        Returns:
            Dictionary with call count, retries, cache flag
        """
        return {
            "call_count": self._call_count,
            "retry_count": self._retry_count,
            "cache_enabled": settings.llm_cache_enabled,
            "model": settings.llm_model,
        }

    async def close(self):
        """Close connections."""
        if self._redis:
            await self._redis.close()
            self._redis = None
        if self._client:
            await self._client.close()
            self._client = None


# Global LLM service instance
llm_service = LLMService()
