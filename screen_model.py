import logging
from typing import List, Optional, Sequence

from pydantic import ValidationError

from config import CANVAS_HEIGHT, CANVAS_WIDTH
from design_schema import Layer, Screen


logger = logging.getLogger(__name__)

SIZE_FIELDS = ("width", "height")


class ScreenNotFoundError(KeyError):
    pass


class LayerNotFoundError(KeyError):
    pass


def blank_screen(screen_id: str, name: str, background_color: str = "#FFFFFF") -> Screen:
    """An empty screen holding only its background layer"""
    return Screen(
        id=screen_id,
        name=name,
        backgroundColor=background_color,
        layers=(Layer(id="bg", type="background", width=CANVAS_WIDTH, height=CANVAS_HEIGHT,
                      backgroundColor=background_color),),
    )


def copy_layer(layer: Layer, **fields) -> Layer:
    """
    Return a new layer with `fields` replaced; the original is left untouched.

    Sizes are clamped to be non-negative.

    Raises:
        ValueError: If the resulting layer is invalid
    """
    for key in SIZE_FIELDS:
        if key in fields and fields[key] is not None:
            fields[key] = max(0, fields[key])
    try:
        return Layer.model_validate({**layer.model_dump(), **fields})
    except ValidationError as e:
        raise ValueError(f"Invalid layer update for {layer.id}: {e}") from e


class DesignSession:
    """
    The ordered screens of one editing session, exactly one of them current.

    Screens and layers are immutable; every mutation swaps in new objects for
    the screen it touches, so untouched screens keep their identity and a
    renderer holding an old screen never sees a half-applied change.
    """

    def __init__(self, screens: Optional[Sequence[Screen]] = None) -> None:
        self.screens: List[Screen] = list(screens) if screens else [blank_screen("screen_1", "Screen 1")]
        self.current_screen_id: str = self.screens[0].id
        self.selected_layer_id: Optional[str] = None

    # lookup

    def _screen_index(self, screen_id: str) -> int:
        for i, screen in enumerate(self.screens):
            if screen.id == screen_id:
                return i
        raise ScreenNotFoundError(screen_id)

    def get_screen(self, screen_id: Optional[str] = None) -> Screen:
        return self.screens[self._screen_index(screen_id or self.current_screen_id)]

    @property
    def current_screen(self) -> Screen:
        return self.get_screen()

    def get_layer(self, layer_id: str, screen_id: Optional[str] = None) -> Layer:
        for layer in self.get_screen(screen_id).layers:
            if layer.id == layer_id:
                return layer
        raise LayerNotFoundError(layer_id)

    @property
    def selected_layer(self) -> Optional[Layer]:
        if self.selected_layer_id is None:
            return None
        return self.get_layer(self.selected_layer_id)

    def _store(self, screen: Screen) -> Screen:
        self.screens[self._screen_index(screen.id)] = screen
        return screen

    # screens

    def add_screen(self, name: Optional[str] = None) -> Screen:
        existing = {s.id for s in self.screens}
        n = len(self.screens) + 1
        while f"screen_{n}" in existing:
            n += 1
        screen = blank_screen(f"screen_{n}", name or f"Screen {n}")
        self.screens.append(screen)
        self.current_screen_id = screen.id
        self.selected_layer_id = None
        return screen

    def remove_screen(self, screen_id: str) -> None:
        """
        Remove a screen; the neighbour becomes current if it was.

        Raises:
            ScreenNotFoundError: If no such screen exists
            ValueError: If it is the only screen left
        """
        index = self._screen_index(screen_id)
        if len(self.screens) == 1:
            raise ValueError("Cannot remove the last screen")
        del self.screens[index]
        if self.current_screen_id == screen_id:
            self.current_screen_id = self.screens[min(index, len(self.screens) - 1)].id
            self.selected_layer_id = None

    def select_screen(self, screen_id: str) -> Screen:
        screen = self.get_screen(screen_id)
        if screen.id != self.current_screen_id:
            self.current_screen_id = screen.id
            self.selected_layer_id = None
        return screen

    def replace_screens(self, screens: Sequence[Screen]) -> None:
        """Swap in a freshly generated set of screens"""
        if not screens:
            raise ValueError("A session needs at least one screen")
        self.screens = list(screens)
        self.current_screen_id = self.screens[0].id
        self.selected_layer_id = None
        logger.info("Session populated with %d screens", len(self.screens))

    def set_background(self, color: str, apply_to_all: bool = False) -> None:
        """
        Set the background color of the current screen, or of every screen.

        Solid background layers take the new color; gradient backgrounds are kept.
        """
        targets = list(self.screens) if apply_to_all else [self.current_screen]
        for screen in targets:
            layers = tuple(
                copy_layer(layer, backgroundColor=color)
                if layer.type == "background" and layer.backgroundGradient is None
                else layer
                for layer in screen.layers
            )
            self._store(screen.model_copy(update={"backgroundColor": color, "layers": layers}))

    # layers

    def _fresh_layer_id(self, screen: Screen, base: str) -> str:
        taken = {layer.id for layer in screen.layers}
        if base not in taken:
            return base
        n = 2
        while f"{base}_{n}" in taken:
            n += 1
        return f"{base}_{n}"

    def add_layer(self, layer: Layer, screen_id: Optional[str] = None) -> Layer:
        """Append a layer on top; a clashing id is replaced by a fresh one"""
        screen = self.get_screen(screen_id)
        layer_id = self._fresh_layer_id(screen, layer.id)
        if layer_id != layer.id:
            layer = layer.model_copy(update={"id": layer_id})
        self._store(screen.model_copy(update={"layers": screen.layers + (layer,)}))
        return layer

    def add_text_layer(self, content: str = "New Text", color: str = "#1A1A1A") -> Layer:
        layer = Layer(
            id="text",
            type="text",
            content=content,
            x=CANVAS_WIDTH / 2 - 400,
            y=CANVAS_HEIGHT / 2 - 100,
            width=800,
            height=200,
            fontSize=72,
            color=color,
            bold=True,
            align="center",
        )
        layer = self.add_layer(layer)
        self.selected_layer_id = layer.id
        return layer

    def update_layer(self, layer_id: str, screen_id: Optional[str] = None, **fields) -> Layer:
        """
        Replace fields of one layer.

        Raises:
            LayerNotFoundError: If the layer does not exist
            ValueError: If the update would produce an invalid layer or change the id
        """
        if "id" in fields:
            raise ValueError("Layer ids cannot be changed")
        screen = self.get_screen(screen_id)
        old = self.get_layer(layer_id, screen.id)
        new = copy_layer(old, **fields)
        layers = tuple(new if layer.id == layer_id else layer for layer in screen.layers)
        self._store(screen.model_copy(update={"layers": layers}))
        return new

    def delete_layer(self, layer_id: str, screen_id: Optional[str] = None) -> None:
        screen = self.get_screen(screen_id)
        self.get_layer(layer_id, screen.id)
        layers = tuple(layer for layer in screen.layers if layer.id != layer_id)
        self._store(screen.model_copy(update={"layers": layers}))
        if self.selected_layer_id == layer_id and screen.id == self.current_screen_id:
            self.selected_layer_id = None

    def select_layer(self, layer_id: Optional[str]) -> None:
        if layer_id is not None:
            self.get_layer(layer_id)
        self.selected_layer_id = layer_id
