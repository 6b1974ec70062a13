"""Pydantic schemas for cases, canonical results and batches."""
