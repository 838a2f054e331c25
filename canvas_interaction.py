"""
Pointer interaction on the design canvas: drag, resize, pan and zoom.

Pointer coordinates are display pixels relative to the canvas origin; layer
geometry is in logical canvas units, so every pointer delta is divided by the
zoom factor before it touches a layer. Geometry updates are coalesced: at most
one pending update per layer, committed to the session once per frame.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Any, List, Optional, Protocol, Tuple, Union

from screen_model import DesignSession, LayerNotFoundError


logger = logging.getLogger(__name__)

Point = Tuple[float, float]

MIN_LAYER_SIZE = 50
ZOOM_STEP = 0.25
MIN_ZOOM = 0.5
MAX_ZOOM = 1.5
SPACE_KEY = " "


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Dragging:
    layer_id: str
    offset: Point


@dataclass(frozen=True)
class Resizing:
    layer_id: str
    start: Point
    size: Point


@dataclass(frozen=True)
class Panning:
    last: Point


InteractionState = Union[Idle, Dragging, Resizing, Panning]

IDLE = Idle()


def start_drag(layer_id: str, layer_origin: Point, pointer: Point, zoom: float) -> Dragging:
    return Dragging(layer_id, (pointer[0] / zoom - layer_origin[0], pointer[1] / zoom - layer_origin[1]))


def start_resize(layer_id: str, layer_size: Point, pointer: Point) -> Resizing:
    return Resizing(layer_id, pointer, layer_size)


def drag_position(state: Dragging, pointer: Point, zoom: float) -> Point:
    """New layer origin: the grab offset stays under the pointer"""
    return pointer[0] / zoom - state.offset[0], pointer[1] / zoom - state.offset[1]


def resize_dimensions(state: Resizing, pointer: Point, zoom: float) -> Point:
    width = state.size[0] + (pointer[0] - state.start[0]) / zoom
    height = state.size[1] + (pointer[1] - state.start[1]) / zoom
    return max(MIN_LAYER_SIZE, width), max(MIN_LAYER_SIZE, height)


def pan_step(state: Panning, pointer: Point) -> Tuple[Panning, Point]:
    """Raw screen delta since the last pan event, not scaled by zoom"""
    delta = (pointer[0] - state.last[0], pointer[1] - state.last[1])
    return Panning(pointer), delta


def clamp_zoom(zoom: float) -> float:
    return max(MIN_ZOOM, min(MAX_ZOOM, zoom))


class FrameScheduler(Protocol):
    def request(self, callback: Callable[[], None]) -> None: ...

    def cancel(self, callback: Callable[[], None]) -> None: ...


class ManualFrameScheduler:
    """Runs requested callbacks when `tick()` is called, once per request"""

    def __init__(self) -> None:
        self._callbacks: List[Callable[[], None]] = []

    def request(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def cancel(self, callback: Callable[[], None]) -> None:
        self._callbacks = [c for c in self._callbacks if c != callback]

    @property
    def pending(self) -> int:
        return len(self._callbacks)

    def tick(self) -> int:
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return len(callbacks)


class CanvasController:
    """
    Owns the interaction state, zoom and pan of one canvas view.

    Layer changes go through `DesignSession.update_layer` on the next frame.
    """

    def __init__(self, session: DesignSession, scheduler: Optional[FrameScheduler] = None) -> None:
        self.session = session
        self.scheduler = scheduler or ManualFrameScheduler()
        self.state: InteractionState = IDLE
        self.zoom = 1.0
        self.pan: Point = (0.0, 0.0)
        self.space_held = False
        self._pending: Dict[str, Dict[str, Any]] = {}
        self._frame_requested = False

    # pointer events

    def pointer_down(self, x: float, y: float, layer_id: Optional[str] = None, on_handle: bool = False) -> InteractionState:
        """
        Start an interaction.

        Args:
            x, y: Pointer position in display pixels
            layer_id: Layer under the pointer, None for empty canvas
            on_handle: True if the pointer is on the layer's resize handle
        """
        pointer = (x, y)
        if self.space_held:
            self.state = Panning(pointer)
            return self.state

        layer = self.session.get_layer(layer_id) if layer_id else None
        if layer is None or layer.type == "background":
            self.session.select_layer(None)
            self.state = IDLE
            return self.state

        self.session.select_layer(layer.id)
        if on_handle:
            self.state = start_resize(layer.id, (layer.width, layer.height), pointer)
        else:
            self.state = start_drag(layer.id, (layer.x, layer.y), pointer, self.zoom)
        return self.state

    def pointer_move(self, x: float, y: float) -> None:
        pointer = (x, y)
        state = self.state
        if isinstance(state, Dragging):
            new_x, new_y = drag_position(state, pointer, self.zoom)
            self._queue(state.layer_id, x=new_x, y=new_y)
        elif isinstance(state, Resizing):
            width, height = resize_dimensions(state, pointer, self.zoom)
            self._queue(state.layer_id, width=width, height=height)
        elif isinstance(state, Panning):
            self.state, (dx, dy) = pan_step(state, pointer)
            self.pan = (self.pan[0] + dx, self.pan[1] + dy)

    def pointer_up(self) -> None:
        self.flush()
        self.state = IDLE

    def key_down(self, key: str) -> None:
        if key == SPACE_KEY:
            self.space_held = True

    def key_up(self, key: str) -> None:
        if key == SPACE_KEY:
            self.space_held = False
            if isinstance(self.state, Panning):
                self.state = IDLE

    # coalescing

    def _queue(self, layer_id: str, **fields) -> None:
        self._pending.setdefault(layer_id, {}).update(fields)
        if not self._frame_requested:
            self._frame_requested = True
            self.scheduler.request(self.flush)

    @property
    def pending_updates(self) -> Dict[str, Dict[str, Any]]:
        return {layer_id: dict(fields) for layer_id, fields in self._pending.items()}

    def flush(self) -> int:
        """Commit pending geometry to the session; returns the number of layers updated"""
        pending, self._pending = self._pending, {}
        if self._frame_requested:
            # An early flush makes the requested frame redundant
            self.scheduler.cancel(self.flush)
        self._frame_requested = False
        updated = 0
        for layer_id, fields in pending.items():
            try:
                self.session.update_layer(layer_id, **fields)
            except LayerNotFoundError:
                logger.warning("Dropping update for deleted layer %s", layer_id)
                continue
            updated += 1
        return updated

    # view

    def zoom_in(self) -> float:
        self.zoom = clamp_zoom(self.zoom + ZOOM_STEP)
        return self.zoom

    def zoom_out(self) -> float:
        self.zoom = clamp_zoom(self.zoom - ZOOM_STEP)
        return self.zoom

    def reset_view(self) -> None:
        self.zoom = 1.0
        self.pan = (0.0, 0.0)
