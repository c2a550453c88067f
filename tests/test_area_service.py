"""Tests for teamtime.services.area_service and teamtime.utils.helpers."""

from datetime import date

import pytest
import requests

from teamtime.core.exceptions import ConfirmationRequired, NotFoundError, ValidationError
from teamtime.services import area_service
from teamtime.utils.helpers import date_param, parse_date

AREAS = [{"id": 1, "name": "Comercial", "color": "#1f77b4"}, {"id": 2, "name": "Ingeniería"}]


class TestListAreas:
    @pytest.mark.parametrize(
        "body",
        [
            {"success": True, "data": {"areas": AREAS}},
            {"success": True, "data": AREAS},
            AREAS,
        ],
        ids=["data.areas", "data", "bare"],
    )
    def test_accepts_every_envelope_shape(self, http, make_response, body):
        http.request.return_value = make_response(200, body)

        areas = area_service.list_areas()

        assert [a.name for a in areas] == ["Comercial", "Ingeniería"]
        assert areas[0].color == "#1f77b4"

    def test_degrades_to_empty_list(self, http):
        http.request.side_effect = requests.ConnectionError("down")

        assert area_service.list_areas() == []

    def test_unexpected_shape_gives_empty_list(self, http, ok):
        http.request.return_value = ok("not a list")

        assert area_service.list_areas() == []


class TestAreaWrites:
    def test_get_missing_area(self, http, fail):
        http.request.return_value = fail(404, "Área no encontrada")

        with pytest.raises(NotFoundError) as info:
            area_service.get_area(99)

        assert info.value.resource_id == 99

    def test_create_requires_name(self, http):
        with pytest.raises(ValidationError):
            area_service.create_area({"name": "  "})
        http.request.assert_not_called()

    def test_create_posts_area(self, http, ok):
        http.request.return_value = ok({"id": 7, "name": "Calidad"})

        created = area_service.create_area({"name": "Calidad", "code": "QA"})

        assert created.id == 7
        body = http.request.call_args.kwargs["json"]
        assert body["name"] == "Calidad"
        assert body["code"] == "QA"
        assert "id" not in body

    def test_delete_requires_confirmation(self, http):
        with pytest.raises(ConfirmationRequired) as info:
            area_service.delete_area(7)

        assert info.value.action == "delete area"
        http.request.assert_not_called()

    def test_statistics_degrade_when_endpoint_missing(self, http, fail):
        http.request.return_value = fail(501, "Not implemented")

        assert area_service.get_area_statistics(1) == {}


class TestDateHelpers:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-02-01", date(2024, 2, 1)),
            ("2024-02-01T10:30:00", date(2024, 2, 1)),
            ("01/02/2024", date(2024, 2, 1)),
            ("", None),
            ("tomorrow", None),
        ],
    )
    def test_parse_date(self, value, expected):
        assert parse_date(value) == expected

    def test_date_param_rejects_garbage(self):
        with pytest.raises(ValueError):
            date_param("31/31/2024")

    def test_date_param_passes_none(self):
        assert date_param(None) is None
