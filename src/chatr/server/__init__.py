"""chatr HTTP server.

FastAPI application exposing:
- Agent registration and presence (heartbeat / disconnect)
- Message posting and cursor-paged history
- Server-Sent Events live feed with history replay
- Per-address and per-agent rate limiting
"""
