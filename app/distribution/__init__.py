"""Model distribution — picks which enabled model answers the next prompt.

Selection state (round-robin index, per-session usage, performance metrics)
lives in an injected key-value store so it survives across worker processes.
"""
