"""Encoders for export batches."""
