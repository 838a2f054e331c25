import pytest

from fallback_generator import detect_category, generate_fallback_layout, gradient_for_description


@pytest.mark.parametrize("prompt,theme", [
    ("A budgeting app for young professionals", "finance"),
    ("Track your gym sessions", "fitness"),
    ("Guided meditation and sleep stories", "wellness"),
    ("Chat with friends nearby", "social"),
    ("A recipe organizer", "general"),
    ("", "general"),
])
def test_detect_category(prompt, theme):
    assert detect_category(prompt) == theme


def test_first_matching_category_wins():
    assert detect_category("Social budgeting with friends") == "finance"


def test_fallback_layout_is_valid_and_numbered():
    response = generate_fallback_layout("A budgeting app")
    assert response.tone == "professional"
    assert [s.id for s in response.screens] == ["screen_1", "screen_2", "screen_3"]
    assert response.screens[0].headline == "Track Every Expense"


def test_fitness_layout_ends_with_hero():
    screen = generate_fallback_layout("fitness coach").screens[2]
    assert (screen.layout, screen.background, screen.emphasis) == ("iphone_hero", "minimal", "social")


def test_social_layout():
    response = generate_fallback_layout("Message your friends")
    assert response.tone == "playful"
    assert [s.headline for s in response.screens] == ["Transform Your Experience", "Built For You", "Stay Connected"]


def test_fallback_layout_is_deterministic():
    assert generate_fallback_layout("anything") == generate_fallback_layout("anything")


def test_gradient_for_description():
    assert gradient_for_description("an energy drink tracker").colors == ("#f093fb", "#f5576c")
    assert gradient_for_description("peace of mind").colors == ("#a8edea", "#fed6e3")
    default = gradient_for_description("a recipe box")
    assert default.colors == ("#667eea", "#764ba2")
    assert default.angle == 135
