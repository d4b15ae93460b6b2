"""Citation normalization for heterogeneous "sources" payloads."""

from citeline.citations.normalizer import extract_domain, favicon_url, normalize

__all__ = ["extract_domain", "favicon_url", "normalize"]
