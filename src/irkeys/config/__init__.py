"""Configuration loaders for the handler chain and decoder thresholds."""
