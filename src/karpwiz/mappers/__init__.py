from .node_mapper import NodeDataMapper, region_from_zone

__all__ = ["NodeDataMapper", "region_from_zone"]
