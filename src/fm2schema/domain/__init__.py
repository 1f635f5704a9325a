"""Domain layer: paths, documents, schema views and the error taxonomy.

This layer depends only on the stdlib.  It must never import from
services, infrastructure, commands, or config.
"""
