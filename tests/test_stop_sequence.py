from collections import Counter

import pytest

from conftest import make_load, make_stop
from loadroute.errors import InvalidOperationError, NotFoundError, ValidationError
from loadroute.models.domain import Address, Stop, StopRole
from loadroute.services.stops import sequence


def _ids(stops):
    return [stop.stop_id for stop in stops]


def test_build_places_pickup_first_and_delivery_last():
    load = make_load()
    stops = sequence.build(load, [make_stop("s2", "Nashville", "TN", 2), make_stop("s1", "Memphis", "TN", 1)])

    assert _ids(stops) == ["pickup", "s1", "s2", "delivery"]
    assert stops[0].role is StopRole.PICKUP
    assert stops[-1].role is StopRole.DELIVERY
    assert stops[0].address.city == "Dallas"
    assert stops[-1].facility_name == "Atlanta Foods"
    assert stops[-1].sequence == 3


def test_build_with_zero_intermediates():
    stops = sequence.build(make_load(), [])

    assert _ids(stops) == ["pickup", "delivery"]
    assert sequence.intermediates(stops) == []
    assert [loc.city for loc in sequence.route_locations(stops)] == ["Dallas", "Atlanta"]


def test_build_rejects_duplicate_and_reserved_ids():
    load = make_load()
    with pytest.raises(ValidationError):
        sequence.build(load, [make_stop("s1", "Memphis", "TN"), make_stop("s1", "Nashville", "TN")])
    with pytest.raises(ValidationError):
        sequence.build(load, [make_stop("pickup", "Memphis", "TN")])
    with pytest.raises(ValidationError):
        sequence.build(load, [Stop(stop_id="x", role=StopRole.DELIVERY)])


def test_insert_appends_with_contiguous_sequence_numbers():
    stops = sequence.build(make_load(), [make_stop("s1", "Memphis", "TN", 7)])

    updated = sequence.insert_intermediate(stops, make_stop("s2", "Nashville", "TN"))

    assert _ids(updated) == ["pickup", "s1", "s2", "delivery"]
    assert [stop.sequence for stop in updated] == [0, 1, 2, 3]
    # input untouched
    assert _ids(stops) == ["pickup", "s1", "delivery"]


def test_insert_rejects_second_pickup_and_id_collisions():
    stops = sequence.build(make_load(), [make_stop("s1", "Memphis", "TN")])

    with pytest.raises(InvalidOperationError):
        sequence.insert_intermediate(stops, Stop(stop_id="p2", role=StopRole.PICKUP))
    with pytest.raises(ValidationError):
        sequence.insert_intermediate(stops, make_stop("s1", "Tulsa", "OK"))


@pytest.mark.parametrize("stop_id", ["pickup", "delivery"])
def test_endpoints_cannot_be_removed(stop_id):
    stops = sequence.build(make_load(), [make_stop("s1", "Memphis", "TN")])

    with pytest.raises(InvalidOperationError):
        sequence.remove_intermediate(stops, stop_id)


def test_remove_unknown_stop_raises_not_found():
    stops = sequence.build(make_load(), [make_stop("s1", "Memphis", "TN")])

    with pytest.raises(NotFoundError):
        sequence.remove_intermediate(stops, "nope")


def test_remove_renumbers_remaining_stops():
    stops = sequence.build(
        make_load(),
        [make_stop("s1", "Memphis", "TN", 1), make_stop("s2", "Nashville", "TN", 2), make_stop("s3", "Tulsa", "OK", 3)],
    )

    updated = sequence.remove_intermediate(stops, "s2")

    assert _ids(updated) == ["pickup", "s1", "s3", "delivery"]
    assert [stop.sequence for stop in updated] == [0, 1, 2, 3]


def test_reorder_preserves_stop_multiset():
    stops = sequence.build(
        make_load(),
        [make_stop("s1", "Memphis", "TN", 1), make_stop("s2", "Nashville", "TN", 2), make_stop("s3", "Tulsa", "OK", 3)],
    )

    updated = sequence.reorder(stops, ["s3", "s1", "s2"])

    assert _ids(updated) == ["pickup", "s3", "s1", "s2", "delivery"]
    assert Counter(_ids(updated)) == Counter(_ids(stops))
    assert updated[1].sequence == 1


@pytest.mark.parametrize(
    "order",
    [["s1"], ["s1", "s2", "s9"], ["s1", "s1"], ["pickup", "s1", "s2"]],
)
def test_reorder_rejects_mismatched_id_sets(order):
    stops = sequence.build(make_load(), [make_stop("s1", "Memphis", "TN", 1), make_stop("s2", "Nashville", "TN", 2)])

    with pytest.raises(ValidationError):
        sequence.reorder(stops, order)


def test_update_intermediate_changes_only_given_fields():
    stops = sequence.build(make_load(), [make_stop("s1", "Memphis", "TN")])

    updated = sequence.update_intermediate(stops, "s1", facility_name="Memphis Cold Storage")

    stop = sequence.find(updated, "s1")
    assert stop.facility_name == "Memphis Cold Storage"
    assert stop.address.city == "Memphis"


def test_update_intermediate_refuses_endpoints():
    stops = sequence.build(make_load(), [])

    with pytest.raises(InvalidOperationError):
        sequence.update_intermediate(stops, "delivery", address=Address(city="Macon", state="GA"))


def test_relocate_endpoint_writes_load_fields():
    load = make_load()

    moved = sequence.relocate_endpoint(load, StopRole.DELIVERY, address=Address(city="Macon", state="ga"), name="Macon DC")

    assert moved.consignee_address.city == "Macon"
    assert moved.consignee_address.state == "GA"
    assert moved.consignee_name == "Macon DC"
    assert moved.shipper_address == load.shipper_address
    assert sequence.build(moved, [])[-1].address.city == "Macon"


def test_relocate_endpoint_rejects_intermediate_role():
    with pytest.raises(InvalidOperationError):
        sequence.relocate_endpoint(make_load(), StopRole.INTERMEDIATE, name="x")


def test_route_locations_can_skip_incomplete_stops():
    stops = sequence.build(make_load(), [Stop(stop_id="s1", role=StopRole.INTERMEDIATE, address=Address(city="Memphis"))])

    assert len(sequence.route_locations(stops)) == 3
    assert [loc.city for loc in sequence.route_locations(stops, complete_only=True)] == ["Dallas", "Atlanta"]


def test_sequence_fingerprint_tracks_order_and_ignores_case():
    load = make_load()
    a = sequence.build(load, [make_stop("s1", "Memphis", "TN", 1), make_stop("s2", "Nashville", "TN", 2)])
    b = sequence.reorder(a, ["s2", "s1"])
    c = sequence.build(load, [make_stop("x1", "memphis ", "tn", 1), make_stop("x2", "NASHVILLE", "TN", 2)])

    assert sequence.sequence_fingerprint(a) != sequence.sequence_fingerprint(b)
    assert sequence.sequence_fingerprint(a) == sequence.sequence_fingerprint(c)
