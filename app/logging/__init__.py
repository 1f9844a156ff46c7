"""Request logging: middleware, exception handlers and the log API."""
