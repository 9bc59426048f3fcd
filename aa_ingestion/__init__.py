"""Account Aggregator ingestion pipeline: select, map, hash, persist, orchestrate."""
