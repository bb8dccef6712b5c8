"""Browser automation -- the shared browser provider, per-platform join
strategies, the session manager that owns one isolated page per joined
meeting, and the HTTP client the orchestrator uses to reach it.
"""
