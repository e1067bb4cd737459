"""Chat-completion provider adapters."""
