"""Shared configuration, errors, logging and persisted models."""
