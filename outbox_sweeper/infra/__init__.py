"""Infrastructure adapters: database, logging, metrics, outbox store and messaging."""
