"""API Resilience Implementations.

Contains the per-endpoint throttle, the cooldown (circuit breaker) tracker
and the retry orchestrator with exponential backoff.
Bounded Context: API Resilience
"""
