from .http import HTTPTransport, parse_json_body

__all__ = ["HTTPTransport", "parse_json_body"]
