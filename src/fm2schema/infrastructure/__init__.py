"""Infrastructure layer: filesystem, document/schema loading, templates.

Thin adapters over the disk, ruamel.yaml and Jinja2.  May import from
domain; never from services, commands, or output.
"""
