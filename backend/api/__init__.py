"""HTTP layer: dependencies, error shaping and versioned routers."""
