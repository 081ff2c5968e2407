"""Shared utilities: exceptions, logging and concurrency helpers."""
