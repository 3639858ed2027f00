"""Framework adapters: ASGI middleware, FastAPI helpers, httpx tracing."""
