"""Prometheus metrics for sweep cycles, dispatch, store and scheduler."""

from outbox_sweeper.infra.metrics.prometheus import REGISTRY

__all__ = ["REGISTRY"]
