"""Service layer: the aggregation engine and the operations that return ServiceResult.

Services may import from domain, infrastructure, and config.
They must never import from commands or output.
"""
