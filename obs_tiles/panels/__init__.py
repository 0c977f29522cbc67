"""panels — Panel controllers and the host's per-panel handle."""
from .handle import PanelHandle, TileLabel
from .controller import NONE_SELECTED, PanelController, PanelRender, PanelView

__all__ = ["NONE_SELECTED", "PanelController", "PanelHandle", "PanelRender", "PanelView", "TileLabel"]
