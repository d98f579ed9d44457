import httpx
import pytest

from conftest import FakeResources
from loadroute.errors import InsufficientLocationError, NotFoundError, UpstreamUnavailableError, ValidationError
from loadroute.services.routing.backends import OSRMRoutingBackend, TmsRoutingBackend
from loadroute.services.routing.geocoder import NominatimGeocoder, _candidates
from loadroute.services.routing.models import ResolveOptions, RouteLocation
from loadroute.services.routing.osrm_client import OSRMClient, check_health, decode_polyline

DALLAS = RouteLocation(city="Dallas", state="TX", address="100 Main St", zip="75201")
ATLANTA = RouteLocation(city="Atlanta", state="GA")

OSRM_OK = {
    "code": "Ok",
    "routes": [{"distance": 1_255_288.32, "duration": 41_400.0, "geometry": "_p~iF~ps|U_ulLnnqC_mqNvxq`@"}],
}

COORDS = {
    "100 Main St, Dallas, TX 75201": None,
    "Dallas, TX 75201": ("32.78", "-96.80"),
    "Atlanta, GA": ("33.75", "-84.39"),
}


def _geocoder_handler(request: httpx.Request) -> httpx.Response:
    hit = COORDS.get(request.url.params["q"])
    if hit is None:
        return httpx.Response(200, json=[])
    return httpx.Response(200, json=[{"lat": hit[0], "lon": hit[1]}])


def test_decode_polyline():
    points = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")

    assert points == [(38.5, -120.2), (40.7, -120.95), (43.252, -126.453)]


def test_geocoder_candidates_fall_back_to_city_state():
    assert _candidates(DALLAS) == ["100 Main St, Dallas, TX 75201", "Dallas, TX 75201", "Dallas, TX"]
    assert _candidates(ATLANTA) == ["Atlanta, GA"]


@pytest.mark.asyncio
async def test_geocoder_caches_hits():
    calls = []

    def handler(request):
        calls.append(request.url.params["q"])
        return _geocoder_handler(request)

    geocoder = NominatimGeocoder(base_url="https://geo.test", transport=httpx.MockTransport(handler))
    first = await geocoder.geocode(DALLAS)
    second = await geocoder.geocode(DALLAS)
    await geocoder.aclose()

    assert first == second == (32.78, -96.80)
    assert calls == ["100 Main St, Dallas, TX 75201", "Dallas, TX 75201", "100 Main St, Dallas, TX 75201"]


@pytest.mark.asyncio
async def test_geocoder_cache_evicts_least_recently_used():
    calls = []

    def handler(request):
        calls.append(request.url.params["q"])
        return _geocoder_handler(request)

    geocoder = NominatimGeocoder(base_url="https://geo.test", max_entries=1, transport=httpx.MockTransport(handler))
    await geocoder.geocode(ATLANTA)
    await geocoder.geocode(ATLANTA)
    await geocoder.geocode(DALLAS)
    assert len(geocoder) == 1
    await geocoder.geocode(ATLANTA)
    await geocoder.aclose()

    assert calls.count("Atlanta, GA") == 2


@pytest.mark.asyncio
async def test_osrm_client_retries_server_errors():
    responses = iter([httpx.Response(503), httpx.Response(200, json=OSRM_OK)])
    client = OSRMClient(
        base_url="http://osrm.test",
        backoff_seconds=0,
        transport=httpx.MockTransport(lambda request: next(responses)),
    )

    data = await client.route([(32.78, -96.80), (33.75, -84.39)])
    await client.aclose()

    assert data["code"] == "Ok"


@pytest.mark.asyncio
async def test_osrm_client_does_not_retry_no_route():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json={"code": "NoRoute", "message": "Impossible route"})

    client = OSRMClient(base_url="http://osrm.test", backoff_seconds=0, transport=httpx.MockTransport(handler))
    with pytest.raises(ValueError, match="Impossible route"):
        await client.route([(32.78, -96.80), (33.75, -84.39)])
    await client.aclose()

    assert calls == ["/route/v1/driving/-96.8,32.78;-84.39,33.75"]


@pytest.mark.asyncio
async def test_osrm_backend_measures_in_miles_and_hours():
    geocoder = NominatimGeocoder(base_url="https://geo.test", transport=httpx.MockTransport(_geocoder_handler))
    client = OSRMClient(
        base_url="http://osrm.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=OSRM_OK)),
    )
    backend = OSRMRoutingBackend(geocoder, client)

    measurement = await backend.measure([DALLAS, ATLANTA])
    await backend.aclose()

    assert measurement.distance_miles == 780.0
    assert measurement.duration_hours == 11.5
    assert measurement.geometry[0] == (38.5, -120.2)


@pytest.mark.asyncio
async def test_osrm_backend_needs_two_geocoded_points():
    geocoder = NominatimGeocoder(
        base_url="https://geo.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[])),
    )
    client = OSRMClient(base_url="http://osrm.test", transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    backend = OSRMRoutingBackend(geocoder, client)

    with pytest.raises(InsufficientLocationError):
        await backend.measure([DALLAS, ATLANTA])
    await backend.aclose()


@pytest.mark.asyncio
async def test_osrm_backend_reports_unavailable_service():
    geocoder = NominatimGeocoder(base_url="https://geo.test", transport=httpx.MockTransport(_geocoder_handler))
    client = OSRMClient(
        base_url="http://osrm.test",
        max_retries=1,
        backoff_seconds=0,
        transport=httpx.MockTransport(lambda request: httpx.Response(502)),
    )
    backend = OSRMRoutingBackend(geocoder, client)

    with pytest.raises(UpstreamUnavailableError):
        await backend.measure([DALLAS, ATLANTA])
    await backend.aclose()


@pytest.mark.asyncio
async def test_tms_backend_delegates_to_calculate_miles():
    resources = FakeResources()
    middle = RouteLocation(city="Memphis", state="TN")

    measurement = await TmsRoutingBackend(resources).measure([DALLAS, middle, ATLANTA])

    name, origin, destination, stops = resources.calls[0]
    assert name == "calculate_miles"
    assert origin == {"city": "Dallas", "state": "TX", "address": "100 Main St", "zip": "75201"}
    assert destination == {"city": "Atlanta", "state": "GA"}
    assert stops == [{"city": "Memphis", "state": "TN"}]
    assert measurement.distance_miles == 780.0


@pytest.mark.asyncio
async def test_tms_backend_failure_is_upstream_unavailable():
    class Failing:
        async def calculate_miles(self, origin, destination, stops):
            return {"success": False, "error": "Unable to geocode"}

    with pytest.raises(UpstreamUnavailableError, match="Unable to geocode"):
        await TmsRoutingBackend(Failing()).measure([DALLAS, ATLANTA])


@pytest.mark.asyncio
async def test_check_health():
    ok = httpx.MockTransport(lambda request: httpx.Response(200, json={"code": "Ok"}))
    down = httpx.MockTransport(lambda request: httpx.Response(503))

    assert await check_health("http://osrm.test", transport=ok) is True
    assert await check_health("http://osrm.test", transport=down) is False


@pytest.mark.asyncio
async def test_tms_backend_uses_stored_route_for_saved_loads():
    resources = FakeResources()
    backend = TmsRoutingBackend(resources)

    measurement = await backend.measure([DALLAS, ATLANTA], ResolveOptions(force_refresh=True, load_id="L-100"))
    await backend.measure([DALLAS, ATLANTA], ResolveOptions(load_id="L-100"))

    assert resources.calls == [("get_load_route", "L-100", True), ("get_load_route", "L-100", False)]
    assert measurement.distance_miles == 812.0
    assert measurement.duration_hours == 12.0


@pytest.mark.asyncio
async def test_tms_backend_calculates_drafts_from_locations():
    resources = FakeResources()

    await TmsRoutingBackend(resources).measure([DALLAS, ATLANTA], ResolveOptions(load_id="temp-1"))

    assert resources.names() == ["calculate_miles"]


@pytest.mark.asyncio
async def test_tms_backend_translates_rejected_requests():
    class Rejecting:
        def __init__(self, error):
            self.error = error

        async def calculate_miles(self, origin, destination, stops):
            raise self.error

    with pytest.raises(InsufficientLocationError, match="rejected"):
        await TmsRoutingBackend(Rejecting(ValidationError("Origin city is required"))).measure([DALLAS, ATLANTA])
    with pytest.raises(UpstreamUnavailableError):
        await TmsRoutingBackend(Rejecting(NotFoundError("Not found"))).measure([DALLAS, ATLANTA])
