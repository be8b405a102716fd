"""Per-call state: the session record, transcript aggregation and barge-in handling."""
