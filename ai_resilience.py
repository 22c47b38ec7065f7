"""AI Resilience Layer: Circuit Breaker, Cache, Cost Tracking.

Provides a unified resilient_llm_call() entry point that wraps every
generative-model call with circuit breaking, optional response caching and
cost tracking. Calls are made exactly once: a failure is reported to the
caller, never retried here.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MODELS: dict[str, str] = {
    "gemini": "gemini-2.0-flash",
    "claude": "claude-sonnet-4-20250514",
    "openai": "gpt-4o-mini",
}


# ── TTL Cache ───────────────────────────────────────────────

class TTLCache:
    """In-memory dict with expiry timestamps, evicting the oldest at 1000 entries."""

    MAX_ENTRIES = 1000

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float]] = {}  # key -> (value, expires_at)
        self._lock = threading.Lock()

    @staticmethod
    def make_key(prompt: str, system: str, model: str) -> str:
        raw = f"{prompt}|{system}|{model}"
        return hashlib.sha256(raw.encode()).hexdigest()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.time() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int = 86400) -> None:
        with self._lock:
            if len(self._store) >= self.MAX_ENTRIES:
                self._evict_oldest()
            self._store[key] = (value, time.time() + ttl_seconds)

    def _evict_oldest(self) -> None:
        if not self._store:
            return
        oldest_key = min(self._store, key=lambda k: self._store[k][1])
        del self._store[oldest_key]

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


# ── Circuit Breaker ─────────────────────────────────────────

@dataclass
class _ProviderState:
    failures: int = 0
    state: str = "closed"  # closed | open | half_open
    last_failure_time: float = 0.0


class CircuitOpenError(RuntimeError):
    """Provider has failed repeatedly; calls are refused until it recovers."""


class CircuitBreaker:
    """Per-provider state machine: closed -> open -> half_open -> closed."""

    FAILURE_THRESHOLD = 3
    RECOVERY_TIMEOUT = 60  # seconds

    def __init__(self) -> None:
        self._providers: dict[str, _ProviderState] = {}
        self._lock = threading.Lock()

    def _get_state(self, provider: str) -> _ProviderState:
        if provider not in self._providers:
            self._providers[provider] = _ProviderState()
        return self._providers[provider]

    def record_success(self, provider: str) -> None:
        with self._lock:
            state = self._get_state(provider)
            state.failures = 0
            state.state = "closed"

    def record_failure(self, provider: str) -> None:
        with self._lock:
            state = self._get_state(provider)
            state.failures += 1
            state.last_failure_time = time.time()
            if state.failures >= self.FAILURE_THRESHOLD:
                state.state = "open"

    def is_open(self, provider: str) -> bool:
        with self._lock:
            state = self._get_state(provider)
            if state.state == "closed":
                return False
            if state.state == "open":
                if time.time() - state.last_failure_time >= self.RECOVERY_TIMEOUT:
                    state.state = "half_open"
                    return False  # allow one attempt
                return True
            return False

    def get_state(self, provider: str) -> str:
        with self._lock:
            return self._get_state(provider).state

    def reset(self) -> None:
        with self._lock:
            self._providers.clear()


# Module-level singletons
_circuit_breaker = CircuitBreaker()
_cache = TTLCache()


# ── Cost Tracker ────────────────────────────────────────────

# Approximate pricing per 1M tokens (input + output averaged)
_MODEL_PRICING: dict[str, float] = {
    "gemini-2.0-flash": 0.075,
    "gemini-1.5-flash": 0.075,
    "claude-sonnet-4-20250514": 3.0,
    "gpt-4o": 2.5,
    "gpt-4o-mini": 0.15,
}


class CostTracker:
    """Estimates tokens from character count and applies model-specific pricing."""

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Rough estimate: 1 token ~ 4 characters."""
        return max(1, len(text) // 4)

    @staticmethod
    def track_call(model: str, input_text: str, output_text: str, latency_ms: int) -> dict:
        input_tokens = CostTracker.estimate_tokens(input_text)
        output_tokens = CostTracker.estimate_tokens(output_text)
        total_tokens = input_tokens + output_tokens
        cost_usd = (total_tokens / 1_000_000) * _MODEL_PRICING.get(model, 1.0)

        return {
            "input_tokens_est": input_tokens,
            "output_tokens_est": output_tokens,
            "total_tokens_est": total_tokens,
            "cost_estimate_usd": round(cost_usd, 6),
            "model": model,
            "latency_ms": latency_ms,
        }


# ── Provider calls ──────────────────────────────────────────

def _do_call(provider: str, model: str, prompt: str, system: str, api_key: str) -> str:
    """Execute the actual model API call (no cache, no breaker)."""
    if provider == "gemini":
        import google.generativeai as genai
        genai.configure(api_key=api_key)
        m = genai.GenerativeModel(model)
        full_prompt = f"{system}\n\n{prompt}" if system else prompt
        response = m.generate_content(
            full_prompt,
            generation_config={"response_mime_type": "application/json"},
        )
        return response.text

    elif provider == "claude":
        import anthropic
        client = anthropic.Anthropic(api_key=api_key)
        kwargs: dict = {
            "model": model,
            "max_tokens": 4096,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        response = client.messages.create(**kwargs)
        return response.content[0].text

    elif provider == "openai":
        from openai import OpenAI
        client = OpenAI(api_key=api_key)
        messages: list[dict] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=4096,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""

    else:
        raise ValueError(f"Unknown provider: {provider}")


def resilient_llm_call(
    provider: str,
    model: str,
    prompt: str,
    system: str = "",
    api_key: str = "",
    cache_ttl: int = 0,
) -> tuple[str, dict]:
    """Main entry point for model calls.

    Args:
        provider: 'gemini', 'claude', or 'openai'
        model: Model name string
        prompt: The prompt text
        system: System prompt (optional)
        api_key: Provider API key
        cache_ttl: Cache TTL in seconds (0 = no caching)

    Returns:
        (response_text, metadata_dict) where metadata includes tokens, cost,
        latency, cache_hit, provider, model.
    """
    if _circuit_breaker.is_open(provider):
        raise CircuitOpenError(f"Circuit breaker open for provider: {provider}")

    cache_key = TTLCache.make_key(prompt, system, model)
    if cache_ttl > 0:
        cached = _cache.get(cache_key)
        if cached is not None:
            return cached, {
                "cache_hit": True,
                "provider": provider,
                "model": model,
                "input_tokens_est": 0,
                "output_tokens_est": 0,
                "cost_estimate_usd": 0.0,
                "latency_ms": 0,
            }

    start = time.time()
    try:
        response_text = _do_call(provider, model, prompt, system, api_key)
    except Exception:
        _circuit_breaker.record_failure(provider)
        raise

    latency_ms = int((time.time() - start) * 1000)
    _circuit_breaker.record_success(provider)

    if cache_ttl > 0:
        _cache.set(cache_key, response_text, cache_ttl)

    metrics = CostTracker.track_call(model, system + prompt, response_text, latency_ms)
    metrics["cache_hit"] = False
    metrics["provider"] = provider
    logger.info("LLM call %s/%s %dms ~%d tokens", provider, model, latency_ms,
                metrics["total_tokens_est"])
    return response_text, metrics


def get_circuit_breaker() -> CircuitBreaker:
    """Access the module-level circuit breaker singleton."""
    return _circuit_breaker


def get_cache() -> TTLCache:
    """Access the module-level TTLCache singleton."""
    return _cache
