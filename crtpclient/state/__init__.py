"""Runtime state containers for crtpclient."""
