"""Adapters connecting the core to logging, web frameworks and collectors."""
