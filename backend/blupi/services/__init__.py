"""Domain services shared by API routes and realtime handlers."""
