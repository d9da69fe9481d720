"""Window store adapters.

This package provides a small abstraction layer so the limiter can run against
an in-memory store in a single process or against Redis sorted sets when
limits must be shared between workers, without changing the limiter itself.
"""
