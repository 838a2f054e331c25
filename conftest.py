import pytest
from PIL import Image

from image_data import image_to_data_uri
from rate_limiter import RateLimiter


class FakeClient:
    """Completion client that replays canned replies; the last reply repeats"""

    name = "fake"

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def complete_json(self, system_prompt, user_prompt, image=None):
        self.calls.append({"system": system_prompt, "user": user_prompt, "image": image})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return reply


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def fake_client():
    return FakeClient


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def limiter():
    return RateLimiter(min_interval=0)


@pytest.fixture
def solid_image():
    def make(color, size=(60, 120), mode="RGB"):
        return image_to_data_uri(Image.new(mode, size, color))
    return make
