from gogarden.services.image_fallback import (
    COOL_SEASON_GLYPH,
    WARM_SEASON_GLYPH,
    FallbackState,
    ImageFallbackController,
    LoadErr,
    LoadFailure,
    LoadOk,
)

TOMATO_IMAGES = [
    "https://storage.example.com/plant-images/tomato.jpg",
    "https://images.unsplash.com/photo-1592924357228",
    "https://images.pexels.com/photos/1327838/tomato.jpeg",
]

FAIL = LoadErr(LoadFailure.FETCH_FAILED, "404")


def _loader(outcomes: dict[str, bool], calls: list[str]):
    async def load(url: str):
        calls.append(url)
        return LoadOk(f"/cache/{url.rsplit('/', 1)[-1]}") if outcomes.get(url) else FAIL
    return load


def test_starts_on_first_candidate():
    controller = ImageFallbackController("Tomato", TOMATO_IMAGES, season="warm")
    assert controller.state is FallbackState.TRYING
    assert controller.current_index == 0
    assert controller.current_url == TOMATO_IMAGES[0]


def test_no_candidates_goes_straight_to_fallback():
    for images in (None, [], [None, ""]):
        controller = ImageFallbackController("Kale", images, season="cool")
        assert controller.state is FallbackState.FALLBACK
        assert controller.current_url is None
        assert controller.placeholder.text == "Kale"
        assert controller.placeholder.glyph == COOL_SEASON_GLYPH


async def test_exhaustion_visits_every_candidate_in_order():
    calls: list[str] = []
    controller = ImageFallbackController("Tomato", TOMATO_IMAGES, season="warm")

    state = await controller.resolve(_loader({}, calls))

    assert state is FallbackState.FALLBACK
    assert calls == TOMATO_IMAGES
    assert controller.attempted == [0, 1, 2]
    assert controller.placeholder.glyph == WARM_SEASON_GLYPH


async def test_stops_at_first_success():
    calls: list[str] = []
    controller = ImageFallbackController("Tomato", TOMATO_IMAGES)

    state = await controller.resolve(_loader({TOMATO_IMAGES[1]: True}, calls))

    assert state is FallbackState.LOADED
    assert calls == TOMATO_IMAGES[:2]
    assert controller.current_index == 1
    assert controller.loaded_uri == "/cache/photo-1592924357228"


def test_record_advances_and_never_goes_back():
    controller = ImageFallbackController("Tomato", TOMATO_IMAGES)
    seen = []
    while controller.state is FallbackState.TRYING:
        seen.append(controller.current_index)
        controller.record(FAIL)

    assert seen == [0, 1, 2]
    # Terminal: late results are ignored
    assert controller.record(LoadOk("/cache/late.jpg")) is FallbackState.FALLBACK
    assert controller.loaded_uri is None


def test_decode_failure_also_advances():
    controller = ImageFallbackController("Tomato", TOMATO_IMAGES)
    controller.record(LoadErr(LoadFailure.DECODE_FAILED))
    assert controller.current_index == 1
    assert controller.last_error.reason is LoadFailure.DECODE_FAILED


def test_entity_switch_resets_state():
    controller = ImageFallbackController("Tomato", TOMATO_IMAGES)
    for _ in TOMATO_IMAGES:
        controller.record(FAIL)
    assert controller.state is FallbackState.FALLBACK

    basil = ["https://storage.example.com/plant-images/basil.jpg"]
    assert controller.show("Basil", basil, season="warm") is True

    assert controller.state is FallbackState.TRYING
    assert controller.current_index == 0
    assert controller.current_url == basil[0]
    assert controller.attempted == []


def test_same_entity_does_not_reset():
    controller = ImageFallbackController("Tomato", TOMATO_IMAGES)
    controller.record(FAIL)

    assert controller.show("Tomato", list(TOMATO_IMAGES)) is False
    assert controller.current_index == 1


async def test_result_for_previous_entity_is_dropped():
    basil = ["https://storage.example.com/plant-images/basil.jpg"]
    controller = ImageFallbackController("Tomato", TOMATO_IMAGES)
    calls: list[str] = []

    async def load(url: str):
        calls.append(url)
        if url == TOMATO_IMAGES[0]:
            # The display is reused for another plant while this load is pending
            controller.show("Basil", basil)
            return FAIL
        return LoadOk("/cache/basil.jpg")

    state = await controller.resolve(load)

    assert state is FallbackState.LOADED
    assert calls == [TOMATO_IMAGES[0], basil[0]]
    assert controller.name == "Basil"
    assert controller.attempted == [0]
