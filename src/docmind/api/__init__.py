"""HTTP API for DocMind."""
