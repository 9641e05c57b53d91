"""LLM Relay: prompt gateway over HTTP, SSE and WebSocket."""
