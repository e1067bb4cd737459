"""Application services driven by the command handler."""
