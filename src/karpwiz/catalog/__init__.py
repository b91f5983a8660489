from .preset_catalog import PresetCatalog, build_catalog_snapshot, load_catalog, BUILTIN_CATALOG_PATH

__all__ = [
    "PresetCatalog",
    "build_catalog_snapshot",
    "load_catalog",
    "BUILTIN_CATALOG_PATH",
]
