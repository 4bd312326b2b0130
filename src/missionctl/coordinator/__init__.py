"""Mission orchestration: dependency gating, permissions, execution and scheduling."""
