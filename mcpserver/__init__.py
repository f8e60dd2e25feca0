"""Model Context Protocol server core: tools, prompts, resources, URI templates, pagination and client sessions."""

__version__ = "0.1.0"
__all__ = ["errors", "types", "uritemplate", "pagination", "session", "server"]