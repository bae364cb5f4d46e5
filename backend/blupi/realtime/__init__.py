"""Realtime board channel: presence, relay, and server push over WebSockets."""
