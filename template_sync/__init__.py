"""Template sync: optimistic-concurrency updates, read cache and background processing for inspection templates."""
