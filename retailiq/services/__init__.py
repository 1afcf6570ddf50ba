"""Request-handling services, one per area of the API."""
