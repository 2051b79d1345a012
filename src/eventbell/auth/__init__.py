"""Authentication for the REST API and the real-time channel.

Learn: One credential (a signed JWT carrying `user_id`) is accepted in
two places:
1. REST calls → `Authorization: Bearer <token>` header
2. WebSocket handshake → `?token=<jwt>` query param, or the same header

Both resolve to an Identity: the active user the token names.
"""
