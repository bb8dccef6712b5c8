"""Recording device control -- idempotent start/stop/status over OBS websocket."""
