from .config_generator import ConfigGenerator, resolve_features, apply_customizations, architectures_for

__all__ = [
    "ConfigGenerator",
    "resolve_features",
    "apply_customizations",
    "architectures_for",
]
