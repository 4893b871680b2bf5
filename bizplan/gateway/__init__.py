"""Outbound request gateway for business-plan generation.

Fronts a single rate-limited LLM endpoint (OpenRouter) with:
  - Request Scheduler (single-flight dispatch, front-of-queue retries)
  - Rate Window Tracker (successful dispatches per 60s window)
  - Retry Policy (429 backoff, error taxonomy)
  - Response Cache (exact-match request deduplication)
  - Upstream Client (httpx POST to chat completions)
"""
