"""items/ -- The durable, concurrency-safe item record store.

Layer rule: items/ imports only stdlib, third-party libraries, and core/.
It knows nothing about tokens, roles, or HTTP.
"""
