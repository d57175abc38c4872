import asyncio
from datetime import date

import httpx
import pytest

from conftest import lakes_package_doc, make_package
from quote_pricing.config.settings import Settings
from quote_pricing.engine.errors import (
    CalculationTimeoutError,
    NetworkError,
    PackageNotFoundError,
    ResolutionError,
)
from quote_pricing.engine.models import ON_REQUEST, TripParameters
from quote_pricing.services.calculation_service import PriceCalculationService
from quote_pricing.services.package_source import HttpPackageSource, InMemoryPackageSource, PackageSource


def params(people=12, nights=5, arrival=date(2024, 6, 10)):
    return TripParameters(number_of_people=people, number_of_nights=nights, arrival_date=arrival)


class GatedSource(PackageSource):
    """The first fetch blocks until ``release()``; later fetches return at once."""

    def __init__(self, package):
        self.package = package
        self.gate = asyncio.Event()
        self.calls = 0

    def release(self):
        self.gate.set()

    async def get_package(self, package_id):
        self.calls += 1
        if self.calls == 1:
            await self.gate.wait()
        return self.package


class SlowSource(PackageSource):
    async def get_package(self, package_id):
        await asyncio.sleep(1)


class BrokenSource(PackageSource):
    async def get_package(self, package_id):
        raise ConnectionError("connection reset by peer")


@pytest.mark.asyncio
async def test_calculate_price_summary(calculator):
    summary = await calculator.calculate_price("q-1", "pkg-lakes", params())
    assert summary == {"price": 1500, "tierLabel": "10-15", "periodLabel": "June", "warnings": []}


@pytest.mark.asyncio
async def test_on_request_summary_uses_wire_label(calculator):
    summary = await calculator.calculate_price("q-1", "pkg-lakes", params(people=18, nights=7))
    assert summary["price"] == "ON_REQUEST"


@pytest.mark.asyncio
async def test_outcome_carries_warnings_and_per_person(calculator):
    outcome = await calculator.request_calculation("q-1", "pkg-lakes", params(people=8), debounce=False)

    assert outcome.price == 1500
    assert outcome.price_per_person == 187.5
    assert outcome.package_version == 1
    assert [w.field for w in outcome.warnings] == ["numberOfPeople"]
    assert outcome.to_summary()["warnings"][0].startswith("8 people is outside")


@pytest.mark.asyncio
async def test_rapid_requests_coalesce_into_one_dispatch(source):
    """5 requests inside the debounce window -> 1 dispatch with the 5th params."""
    service = PriceCalculationService(source, settings=Settings(debounce_seconds=0.05))

    handles = [
        service.submit("q-1", "pkg-lakes", params(people=people))
        for people in (10, 11, 12, 16, 17)
    ]
    outcomes = await asyncio.gather(*(h.result() for h in handles))

    assert service.dispatch_count == 1
    assert source.fetch_count == 1
    assert [o.superseded for o in outcomes] == [True, True, True, True, False]
    assert outcomes[-1].params.number_of_people == 17
    assert outcomes[-1].price == 1350


@pytest.mark.asyncio
async def test_tokens_are_per_quote(source):
    service = PriceCalculationService(source, settings=Settings(debounce_seconds=0.02))

    first = service.submit("q-1", "pkg-lakes", params())
    second = service.submit("q-2", "pkg-lakes", params(nights=3))
    a, b = await asyncio.gather(first.result(), second.result())

    assert not a.superseded and a.price == 1500
    assert not b.superseded and b.price == 1000
    assert service.dispatch_count == 2


@pytest.mark.asyncio
async def test_stale_response_is_discarded(package):
    source = GatedSource(package)
    service = PriceCalculationService(source, settings=Settings(debounce_seconds=0.0))

    slow = service.submit("q-1", "pkg-lakes", params(nights=3), debounce=False)
    await asyncio.sleep(0)  # let the first request reach the blocked fetch
    fresh = await service.request_calculation("q-1", "pkg-lakes", params(nights=7), debounce=False)

    source.release()
    stale = await slow.result()

    assert fresh.price == 2000 and not fresh.superseded
    assert stale.superseded
    assert stale.resolution is None
    assert service.dispatch_count == 2


@pytest.mark.asyncio
async def test_cancel_handle(source):
    service = PriceCalculationService(source, settings=Settings(debounce_seconds=0.05))
    handle = service.submit("q-1", "pkg-lakes", params())
    token = handle.token

    handle.cancel()

    with pytest.raises(asyncio.CancelledError):
        await handle.result()
    assert service.current_token("q-1") > token
    assert service.dispatch_count == 0


@pytest.mark.asyncio
async def test_service_cancel_supersedes_pending_request(source):
    service = PriceCalculationService(source, settings=Settings(debounce_seconds=0.05))
    handle = service.submit("q-1", "pkg-lakes", params())

    service.cancel("q-1")
    outcome = await handle

    assert outcome.superseded
    assert service.dispatch_count == 0


@pytest.mark.asyncio
async def test_cache_hit_for_same_cell(source):
    service = PriceCalculationService(source, settings=Settings(debounce_seconds=0.0))

    first = await service.request_calculation("q-1", "pkg-lakes", params())
    second = await service.request_calculation("q-2", "pkg-lakes", params(people=14))

    assert not first.cache_hit
    assert second.cache_hit
    assert service.cache_hits == 1
    assert service.cache_misses == 1
    assert service.cached_price(("pkg-lakes", 1, 0, 5, "June")) == 1500


@pytest.mark.asyncio
async def test_every_calculation_fetches_current_package(source):
    service = PriceCalculationService(source, settings=Settings(debounce_seconds=0.0))

    await service.request_calculation("q-1", "pkg-lakes", params())
    again = await service.request_calculation("q-1", "pkg-lakes", params())

    assert source.fetch_count == 2
    assert again.cache_hit
    assert again.price == 1500
    assert "Cached matrix price" in again.resolution.get_trace_text()


@pytest.mark.asyncio
async def test_on_request_cell_is_cached(source):
    service = PriceCalculationService(source, settings=Settings(debounce_seconds=0.0))

    first = await service.request_calculation("q-1", "pkg-lakes", params(people=18, nights=7))
    second = await service.request_calculation("q-1", "pkg-lakes", params(people=19, nights=7))

    assert not first.cache_hit
    assert second.cache_hit
    assert second.price is ON_REQUEST


@pytest.mark.asyncio
async def test_new_package_version_invalidates_cache(source):
    """An edited package is priced from its new version on the very next request."""
    service = PriceCalculationService(source, settings=Settings())
    old = await service.request_calculation("q-1", "pkg-lakes", params(), debounce=False)
    assert old.price == 1500

    source.put(make_package(version=2, june_five_nights=1575))
    new = await service.request_calculation("q-1", "pkg-lakes", params(), debounce=False)

    assert new.price == 1575
    assert new.package_version == 2
    assert not new.cache_hit
    assert service.cached_price(("pkg-lakes", 1, 0, 5, "June")) is None
    assert service.cached_price(("pkg-lakes", 2, 0, 5, "June")) == 1575


@pytest.mark.asyncio
async def test_cache_is_bounded(source):
    service = PriceCalculationService(
        source, settings=Settings(debounce_seconds=0.0, cache_max_entries=2),
    )
    for nights in (3, 5, 7):
        await service.request_calculation("q-1", "pkg-lakes", params(nights=nights))

    assert service.cache_size == 2
    assert service.cached_price(("pkg-lakes", 1, 0, 3, "June")) is None


@pytest.mark.asyncio
async def test_fetch_timeout():
    service = PriceCalculationService(
        SlowSource(), settings=Settings(debounce_seconds=0.0, fetch_timeout_seconds=0.05),
    )
    with pytest.raises(CalculationTimeoutError) as exc_info:
        await service.request_calculation("q-1", "pkg-lakes", params())

    err = exc_info.value
    assert err.code == "CALCULATION_TIMEOUT"
    assert err.retryable
    assert "manual_price" in err.to_dict()["recovery_actions"]


@pytest.mark.asyncio
async def test_connection_failure_becomes_network_error():
    service = PriceCalculationService(BrokenSource(), settings=Settings(debounce_seconds=0.0))
    with pytest.raises(NetworkError) as exc_info:
        await service.request_calculation("q-1", "pkg-lakes", params())
    assert exc_info.value.retryable
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_missing_package(calculator):
    with pytest.raises(PackageNotFoundError) as exc_info:
        await calculator.request_calculation("q-1", "pkg-gone", params())
    assert exc_info.value.recovery_actions == ("unlink_package",)


@pytest.mark.asyncio
async def test_inactive_package_is_not_found():
    source = InMemoryPackageSource([make_package(status="inactive")])
    service = PriceCalculationService(source, settings=Settings(debounce_seconds=0.0))

    with pytest.raises(PackageNotFoundError) as exc_info:
        await service.request_calculation("q-1", "pkg-lakes", params())
    assert exc_info.value.context["status"] == "inactive"


@pytest.mark.asyncio
async def test_resolution_error_propagates(calculator):
    with pytest.raises(ResolutionError) as exc_info:
        await calculator.request_calculation("q-1", "pkg-lakes", params(arrival=date(2024, 2, 1)))
    assert exc_info.value.code == "NO_PERIOD_MATCH"


# ---------------------------------------------------------------------------
# HTTP package source
# ---------------------------------------------------------------------------

def http_source(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpPackageSource("http://packages.test/api/", timeout_seconds=2.0, client=client)


@pytest.mark.asyncio
async def test_http_source_unwraps_data_envelope():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json={"success": True, "data": lakes_package_doc(version=3)})

    source = http_source(handler)
    package = await source.get_package("pkg-lakes")
    await source.aclose()

    assert seen == ["http://packages.test/api/packages/pkg-lakes"]
    assert package.version == 3
    assert package.pricing_matrix[0].find_price(1, 7).price is ON_REQUEST


@pytest.mark.asyncio
async def test_http_source_404():
    source = http_source(lambda request: httpx.Response(404, json={"error": "not found"}))
    with pytest.raises(PackageNotFoundError):
        await source.get_package("pkg-lakes")


@pytest.mark.asyncio
async def test_http_source_server_error():
    source = http_source(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(NetworkError) as exc_info:
        await source.get_package("pkg-lakes")
    assert exc_info.value.context["status_code"] == 502


@pytest.mark.asyncio
async def test_http_source_invalid_json():
    source = http_source(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(NetworkError):
        await source.get_package("pkg-lakes")


@pytest.mark.asyncio
async def test_http_source_connect_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError):
        await http_source(handler).get_package("pkg-lakes")


@pytest.mark.asyncio
async def test_http_source_timeout():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(CalculationTimeoutError):
        await http_source(handler).get_package("pkg-lakes")


@pytest.mark.asyncio
async def test_service_over_http_source():
    source = http_source(lambda request: httpx.Response(200, json=lakes_package_doc()))
    service = PriceCalculationService(source, settings=Settings(debounce_seconds=0.0))

    summary = await service.calculate_price("q-1", "pkg-lakes", params(people=16, nights=3))
    assert summary["price"] == 900
    assert summary["tierLabel"] == "16-20"
