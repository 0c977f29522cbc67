"""properties — Panel and plugin property records."""
from .store import PanelProperties, PropertyStore, YamlPropertyFile

__all__ = ["PanelProperties", "PropertyStore", "YamlPropertyFile"]
