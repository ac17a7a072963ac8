"""Real-time direct messaging backend."""
