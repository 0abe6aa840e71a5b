"""HTTP surface of inkscreen_lite: aiohttp app, middleware and routes."""
