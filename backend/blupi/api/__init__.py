"""HTTP and WebSocket route modules."""
