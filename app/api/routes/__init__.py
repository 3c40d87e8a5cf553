from . import jobs, lessons, outlines

__all__ = ["jobs", "lessons", "outlines"]
