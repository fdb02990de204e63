"""Resilience – retrying operations that lose optimistic-concurrency races."""
