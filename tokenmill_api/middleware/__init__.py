from tokenmill_api.middleware.request_tracing import RequestTracingMiddleware, get_request_id

__all__ = ["RequestTracingMiddleware", "get_request_id"]
