import pytest

from canvas_interaction import (
    IDLE,
    MIN_LAYER_SIZE,
    SPACE_KEY,
    CanvasController,
    Dragging,
    ManualFrameScheduler,
    Panning,
    Resizing,
)
from design_schema import Layer
from screen_model import DesignSession


@pytest.fixture
def session():
    session = DesignSession()
    session.add_layer(Layer(id="box", type="decoration", x=100, y=100, width=200, height=200))
    return session


@pytest.fixture
def controller(session):
    return CanvasController(session, ManualFrameScheduler())


def test_drag_moves_layer_by_pointer_delta(controller, session):
    assert isinstance(controller.pointer_down(150, 150, "box"), Dragging)
    controller.pointer_move(250, 180)
    controller.pointer_up()

    layer = session.get_layer("box")
    assert (layer.x, layer.y) == (200, 130)
    assert controller.state == IDLE
    assert session.selected_layer_id == "box"


def test_drag_delta_is_scaled_by_zoom(controller, session):
    controller.zoom = 0.5
    controller.pointer_down(60, 60, "box")
    controller.pointer_move(110, 60)
    controller.pointer_up()
    assert session.get_layer("box").x == 200


def test_resize_respects_minimum_size(controller, session):
    assert isinstance(controller.pointer_down(300, 300, "box", on_handle=True), Resizing)
    controller.pointer_move(50, 340)
    controller.pointer_up()
    layer = session.get_layer("box")
    assert (layer.width, layer.height) == (MIN_LAYER_SIZE, 240)


def test_moves_are_coalesced_into_one_update_per_frame(controller, session):
    scheduler = controller.scheduler
    controller.pointer_down(150, 150, "box")
    for x in range(151, 171):
        controller.pointer_move(x, 150)

    assert scheduler.pending == 1
    assert controller.pending_updates == {"box": {"x": 120, "y": 100}}
    assert session.get_layer("box").x == 100

    assert scheduler.tick() == 1
    assert session.get_layer("box").x == 120
    assert controller.pending_updates == {}


def test_pointer_up_cancels_the_requested_frame(controller, session):
    scheduler = controller.scheduler
    for _ in range(3):
        controller.pointer_down(150, 150, "box")
        controller.pointer_move(160, 150)
        controller.pointer_up()
        assert scheduler.pending == 0

    assert scheduler.tick() == 0
    assert session.get_layer("box").x == 130


def test_pan_with_space_held(controller, session):
    controller.key_down(SPACE_KEY)
    assert isinstance(controller.pointer_down(10, 10, "box"), Panning)
    controller.pointer_move(30, 5)
    controller.pointer_move(40, 15)
    assert controller.pan == (30, 5)
    assert session.get_layer("box").x == 100

    controller.key_up(SPACE_KEY)
    assert controller.state == IDLE


def test_clicking_background_clears_selection(controller, session):
    controller.pointer_down(150, 150, "box")
    controller.pointer_up()
    assert controller.pointer_down(5, 5, "bg") == IDLE
    assert session.selected_layer_id is None
    controller.pointer_down(150, 150, "box")
    assert controller.pointer_down(5, 5) == IDLE


def test_update_for_deleted_layer_is_dropped(controller, session):
    controller.pointer_down(150, 150, "box")
    controller.pointer_move(160, 150)
    session.delete_layer("box")
    assert controller.flush() == 0


def test_zoom_is_clamped():
    controller = CanvasController(DesignSession())
    for _ in range(10):
        controller.zoom_in()
    assert controller.zoom == 1.5
    for _ in range(10):
        controller.zoom_out()
    assert controller.zoom == 0.5
    controller.pan = (5, 5)
    controller.reset_view()
    assert (controller.zoom, controller.pan) == (1.0, (0.0, 0.0))
