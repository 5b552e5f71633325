"""Stateful services: stores, the orchestrator and batch scheduling."""
