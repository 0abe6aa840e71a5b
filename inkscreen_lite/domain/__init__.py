"""Render pipeline domain: models, value tree and the pipeline stages."""
