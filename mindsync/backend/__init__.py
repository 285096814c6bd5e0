"""FastAPI backend serving one live document over REST and WebSocket."""
