from .templates import TemplateService, build_store

__all__ = ["TemplateService", "build_store"]
