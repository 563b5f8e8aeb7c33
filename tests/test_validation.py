from __future__ import annotations

import math

import pytest

from arcgis_mcp_server.errors import InsufficientVertices, InvalidArgument, MissingCredential
from arcgis_mcp_server.models import Coordinate
from arcgis_mcp_server.validation import (
    validate_attributes,
    validate_coordinates,
    validate_latitude,
    validate_layer,
    validate_longitude,
    validate_object_id,
    validate_url,
    validate_where,
    validate_wkid,
)

URL = "https://services.arcgis.com/x/arcgis/rest/services/Parks/FeatureServer/0"


@pytest.mark.parametrize("api_key", [None, "", "   ", 42])
def test_missing_api_key(api_key) -> None:
    with pytest.raises(MissingCredential):
        validate_layer(URL, api_key)


def test_credential_checked_before_url() -> None:
    with pytest.raises(MissingCredential):
        validate_layer("not a url", None)


def test_layer_ref_normalized() -> None:
    layer = validate_layer(URL + "/", " key ")
    assert layer.url == URL
    assert layer.api_key == "key"


@pytest.mark.parametrize("url", [None, "", "ftp://host/layer", "services.arcgis.com/layer", "https://"])
def test_invalid_url(url) -> None:
    with pytest.raises(InvalidArgument) as exc_info:
        validate_url(url)
    assert exc_info.value.field == "url"


def test_object_id() -> None:
    assert validate_object_id(7) == 7
    assert validate_object_id(7.0) == 7


@pytest.mark.parametrize("value", [None, 0, -3, 1.5, True, "7"])
def test_invalid_object_id(value) -> None:
    with pytest.raises(InvalidArgument) as exc_info:
        validate_object_id(value)
    assert exc_info.value.field == "objectId"


def test_ordinate_bounds_are_inclusive() -> None:
    assert validate_latitude(-90) == -90
    assert validate_latitude(90.0) == 90.0
    assert validate_longitude(-180) == -180
    assert validate_longitude(180) == 180


@pytest.mark.parametrize("value", [90.0001, -91, math.nan, math.inf, None, False, "10"])
def test_invalid_latitude(value) -> None:
    with pytest.raises(InvalidArgument) as exc_info:
        validate_latitude(value)
    assert exc_info.value.field == "latitude"


def test_invalid_longitude_names_field() -> None:
    with pytest.raises(InvalidArgument) as exc_info:
        validate_longitude(180.5)
    assert exc_info.value.field == "longitude"


def test_wkid() -> None:
    assert validate_wkid(None) == 4326
    assert validate_wkid(3857) == 3857
    for bad in (0, -1, 4326.5, True):
        with pytest.raises(InvalidArgument):
            validate_wkid(bad)


class TestCoordinates:
    def test_one_coordinate_is_not_a_line(self):
        with pytest.raises(InsufficientVertices) as exc_info:
            validate_coordinates([{"latitude": 1, "longitude": 2}], minimum=2)
        assert exc_info.value.minimum == 2
        assert exc_info.value.actual == 1

    def test_two_coordinates_make_a_line(self):
        result = validate_coordinates(
            [{"latitude": 1, "longitude": 2}, {"latitude": 3, "longitude": 4}], minimum=2
        )
        assert result == [Coordinate(1, 2), Coordinate(3, 4)]

    def test_polygon_needs_three(self):
        with pytest.raises(InsufficientVertices):
            validate_coordinates(
                [{"latitude": 1, "longitude": 2}, {"latitude": 3, "longitude": 4}], minimum=3
            )

    def test_count_is_checked_before_items(self):
        with pytest.raises(InsufficientVertices):
            validate_coordinates(["junk"], minimum=2)

    def test_bad_item_names_index(self):
        with pytest.raises(InvalidArgument) as exc_info:
            validate_coordinates(
                [{"latitude": 1, "longitude": 2}, {"latitude": 95, "longitude": 4}], minimum=2
            )
        assert exc_info.value.field == "coordinates[1].latitude"

    def test_not_a_list(self):
        with pytest.raises(InvalidArgument):
            validate_coordinates({"latitude": 1, "longitude": 2}, minimum=2)


class TestAttributes:
    def test_scalars_pass(self):
        attrs = {"NAME": "Park", "AREA": 1.5, "COUNT": 3, "OPEN": True, "NOTES": None}
        assert validate_attributes(attrs) == attrs

    def test_nested_value_rejected(self):
        with pytest.raises(InvalidArgument) as exc_info:
            validate_attributes({"NAME": {"first": "x"}})
        assert exc_info.value.field == "attributes.NAME"

    def test_required(self):
        with pytest.raises(InvalidArgument):
            validate_attributes(None)
        with pytest.raises(InvalidArgument):
            validate_attributes(["NAME"])


def test_where_defaults_to_unfiltered() -> None:
    assert validate_where(None) == "1=1"
    assert validate_where("  ") == "1=1"
    assert validate_where("NAME = 'x'") == "NAME = 'x'"
    with pytest.raises(InvalidArgument):
        validate_where(5)


@pytest.mark.parametrize("suffix", ["?f=json", "/?token=abc#top", "#details"])
def test_url_query_and_fragment_are_dropped(suffix) -> None:
    assert validate_url(URL + suffix) == URL
