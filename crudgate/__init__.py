"""Request middleware pipeline with sliding-window rate limiting."""
