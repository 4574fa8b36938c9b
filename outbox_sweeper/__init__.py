"""Transactional outbox sweeper: delivers pending outbox rows to SQS and SNS."""

__version__ = "0.1.0"
