"""Provider-independent services: retry/backoff, normalization, batch dispatch."""
