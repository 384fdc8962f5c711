"""Application layer: configuration, exchange client, storage, API and scheduling."""
