"""Model registry, provider adapters and the generation gateway."""
