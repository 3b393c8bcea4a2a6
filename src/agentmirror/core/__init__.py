"""Core reconciliation engine for agentmirror."""
