"""fm2schema: aggregate Markdown frontmatter into schema-shaped JSON or YAML."""

__version__ = "0.1.0"
