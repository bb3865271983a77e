"""Pydantic models for the stacks configuration file."""
