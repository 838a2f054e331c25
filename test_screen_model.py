import pytest

from design_schema import Gradient, Layer
from screen_model import DesignSession, LayerNotFoundError, ScreenNotFoundError, blank_screen, copy_layer


def test_new_session_has_one_blank_screen():
    session = DesignSession()
    assert [s.id for s in session.screens] == ["screen_1"]
    assert session.current_screen.layers[0].type == "background"
    assert session.selected_layer is None


def test_added_text_layers_get_unique_ids():
    session = DesignSession()
    first = session.add_text_layer()
    second = session.add_text_layer()
    third = session.add_text_layer()
    assert [first.id, second.id, third.id] == ["text", "text_2", "text_3"]
    assert session.selected_layer_id == "text_3"


def test_update_replaces_only_the_touched_screen():
    session = DesignSession()
    session.add_text_layer()
    other = session.add_screen()
    session.select_screen("screen_1")
    before = session.current_screen
    layer_before = session.get_layer("text")

    updated = session.update_layer("text", x=10, y=20)

    assert (updated.x, updated.y) == (10, 20)
    assert layer_before.x != 10
    assert session.current_screen is not before
    assert session.get_screen(other.id) is other


def test_update_clamps_negative_sizes():
    session = DesignSession()
    session.add_text_layer()
    assert session.update_layer("text", width=-30).width == 0


def test_update_cannot_change_id():
    session = DesignSession()
    session.add_text_layer()
    with pytest.raises(ValueError):
        session.update_layer("text", id="other")


def test_invalid_update_raises_value_error():
    layer = Layer(id="t", type="text", fontSize=12)
    with pytest.raises(ValueError):
        copy_layer(layer, fontSize=-5)


def test_delete_selected_layer_clears_selection():
    session = DesignSession()
    session.add_text_layer()
    session.delete_layer("text")
    assert session.selected_layer_id is None
    with pytest.raises(LayerNotFoundError):
        session.get_layer("text")


def test_select_unknown_layer_raises():
    with pytest.raises(LayerNotFoundError):
        DesignSession().select_layer("ghost")


def test_unknown_screen_raises():
    with pytest.raises(ScreenNotFoundError):
        DesignSession().select_screen("screen_9")


def test_switching_screens_clears_selection():
    session = DesignSession()
    session.add_text_layer()
    session.add_screen()
    assert session.current_screen_id == "screen_2"
    assert session.selected_layer_id is None


def test_cannot_remove_last_screen():
    session = DesignSession()
    with pytest.raises(ValueError):
        session.remove_screen("screen_1")


def test_removing_current_screen_selects_neighbour():
    session = DesignSession()
    session.add_screen()
    session.add_screen()
    session.remove_screen("screen_3")
    assert session.current_screen_id == "screen_2"
    session.add_screen()
    assert session.current_screen_id == "screen_3"


def test_replace_screens():
    session = DesignSession()
    session.replace_screens([blank_screen("a", "A"), blank_screen("b", "B")])
    assert session.current_screen_id == "a"
    with pytest.raises(ValueError):
        session.replace_screens([])


def test_set_background_keeps_gradients():
    gradient_screen = blank_screen("screen_2", "Screen 2").model_copy(update={"layers": (
        Layer(id="bg", type="background", backgroundColor="#F0F4FF",
              backgroundGradient=Gradient(colors=("#F0F4FF", "#E0E7FF"))),
    )})
    session = DesignSession([blank_screen("screen_1", "Screen 1"), gradient_screen])

    session.set_background("#112233", apply_to_all=True)

    assert session.get_layer("bg", "screen_1").backgroundColor == "#112233"
    assert session.get_layer("bg", "screen_2").backgroundColor == "#F0F4FF"
    assert all(s.backgroundColor == "#112233" for s in session.screens)


def test_set_background_current_screen_only():
    session = DesignSession()
    session.add_screen()
    session.set_background("#000000")
    assert session.get_screen("screen_1").backgroundColor == "#FFFFFF"
    assert session.get_screen("screen_2").backgroundColor == "#000000"
