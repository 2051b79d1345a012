"""Real-time infrastructure: per-user notification streams over WebSocket.

Learn: Events flow through two hops:
1. Services → publisher (Redis PUBLISH when available, else in-process)
2. StreamRegistry → every socket subscribed under that user's identity

Delivery is at-most-once: if the user has no open socket, the event is
dropped. The REST API is the catch-up path.
"""
