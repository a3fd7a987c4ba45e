"""Orchestration core: dispatch, single-flight guards, background jobs and status."""
