"""Tests for teamtime.services.area_flow_service."""

import pytest
import requests

from teamtime.core.exceptions import ConfirmationRequired, PermissionDenied, ValidationError
from teamtime.models.area import AreaFlow
from teamtime.services import area_flow_service


def _flow(flow_id, to_area, order, required, *, active=True, from_area=1):
    return {
        "id": flow_id,
        "fromAreaId": from_area,
        "toAreaId": to_area,
        "flowOrder": order,
        "isRequired": required,
        "isActive": active,
    }


def _flows(*rows):
    return [AreaFlow.from_dict(r) for r in rows]


class TestSelectNextStep:
    def test_picks_lowest_order_required_edge(self):
        flows = _flows(
            _flow(1, 5, 3, True),
            _flow(2, 6, 1, False),
            _flow(3, 7, 2, True),
        )

        nxt = area_flow_service.select_next_step(flows)

        assert nxt.id == 3
        assert nxt.to_area_id == 7

    def test_none_when_no_required_edge(self):
        flows = _flows(_flow(1, 5, 1, False), _flow(2, 6, 2, False))

        assert area_flow_service.select_next_step(flows) is None

    def test_inactive_and_self_loop_edges_ignored(self):
        flows = _flows(
            _flow(1, 5, 1, True, active=False),
            _flow(2, 1, 1, True),
            _flow(3, 6, 4, True),
        )

        assert area_flow_service.select_next_step(flows).id == 3

    def test_alternatives_are_optional_edges_in_order(self):
        flows = _flows(
            _flow(1, 5, 3, False),
            _flow(2, 6, 1, True),
            _flow(3, 7, 2, False),
        )

        alternatives = area_flow_service.select_alternatives(flows)

        assert [f.id for f in alternatives] == [3, 1]
        assert all(not f.is_required for f in alternatives)


class TestLiveQueries:
    def test_next_step_uses_outgoing_edges(self, http, ok):
        http.request.return_value = ok([_flow(1, 5, 2, True), _flow(2, 6, 1, True)])

        nxt = area_flow_service.get_next_flow_step(1)

        assert nxt.id == 2
        args, _ = http.request.call_args
        assert args == ("GET", "http://testserver/api/area-flows/from/1")

    def test_alternatives_degrade_when_backend_down(self, http):
        http.request.side_effect = requests.ConnectionError("down")

        assert area_flow_service.get_alternative_flows(1) == []

    def test_available_flows_sorted_and_active_only(self, http, ok):
        http.request.return_value = ok([
            _flow(1, 5, 3, False),
            _flow(2, 6, 1, True, active=False),
            _flow(3, 7, 2, True),
        ])

        flows = area_flow_service.get_available_flows_from_area(1)

        assert [f.id for f in flows] == [3, 1]

    def test_flow_between_areas_absent(self, http, fail):
        http.request.return_value = fail(404, "No existe flujo")

        assert area_flow_service.get_flow_between_areas(1, 9) is None
        _, kwargs = http.request.call_args
        assert kwargs["params"] == {"fromAreaId": 1, "toAreaId": 9}


class TestFlowConfiguration:
    def test_self_loops_are_dropped(self, http, ok):
        http.request.return_value = ok([
            {
                "id": 1,
                "name": "Comercial",
                "flows": [_flow(10, 1, 1, True), _flow(11, 2, 2, True)],
            },
            {"area": {"id": 2, "name": "Ingeniería"}, "flows": []},
        ])

        configuration = area_flow_service.get_flow_configuration()

        assert [entry["area"].name for entry in configuration] == ["Comercial", "Ingeniería"]
        first = configuration[0]["flows"]
        assert [f.id for f in first] == [11]
        for entry in configuration:
            assert all(f.from_area_id != f.to_area_id for f in entry["flows"])

    def test_degrades_to_empty_on_transport_failure(self, http):
        http.request.side_effect = requests.ConnectionError("refused")

        assert area_flow_service.get_flow_configuration() == []

    def test_degrades_to_empty_when_endpoint_missing(self, http, fail):
        http.request.return_value = fail(501, "Not implemented")

        assert area_flow_service.get_flow_configuration() == []

    def test_permission_errors_are_not_swallowed(self, http, fail):
        http.request.return_value = fail(403, "Forbidden")

        with pytest.raises(PermissionDenied):
            area_flow_service.get_flow_configuration()


class TestValidateTransfer:
    def test_normalizes_invalid_answer(self, http, ok):
        http.request.return_value = ok({"valid": False, "message": "Debe pasar por Calidad"})

        check = area_flow_service.validate_transfer(42, 1, 3)

        assert check["is_valid"] is False
        assert check["reason"] == "Debe pasar por Calidad"
        _, kwargs = http.request.call_args
        assert kwargs["json"] == {"projectId": 42, "fromAreaId": 1, "toAreaId": 3}

    def test_normalizes_valid_answer(self, http, ok):
        http.request.return_value = ok({"isValid": True, "requiresApproval": True,
                                        "flow": _flow(5, 2, 1, True)})

        check = area_flow_service.validate_transfer(42, 1, 2)

        assert check["is_valid"] is True
        assert check["reason"] is None
        assert check["requires_approval"] is True
        assert check["flow"].id == 5


class TestAdminWrites:
    def test_create_rejects_self_loop_without_request(self, http):
        with pytest.raises(ValidationError) as info:
            area_flow_service.create_area_flow({"fromAreaId": 4, "toAreaId": 4})

        assert "toAreaId" in info.value.details
        http.request.assert_not_called()

    def test_create_sends_camel_case_body(self, http, ok):
        http.request.return_value = ok(_flow(12, 2, 1, True))

        created = area_flow_service.create_area_flow(
            AreaFlow(id=None, from_area_id=1, to_area_id=2, is_required=True)
        )

        assert created.id == 12
        _, kwargs = http.request.call_args
        body = kwargs["json"]
        assert body["fromAreaId"] == 1
        assert body["requiresApproval"] is True
        assert "id" not in body

    def test_update_rejects_self_loop(self, http):
        with pytest.raises(ValidationError):
            area_flow_service.update_area_flow(3, {"fromAreaId": 2, "toAreaId": "2"})
        http.request.assert_not_called()

    def test_delete_requires_confirmation(self, http):
        with pytest.raises(ConfirmationRequired):
            area_flow_service.delete_area_flow(3)
        http.request.assert_not_called()

    def test_delete_returns_deactivated_edge(self, http, ok):
        http.request.return_value = ok(_flow(3, 2, 1, True, active=False), message="Flujo desactivado")

        flow = area_flow_service.delete_area_flow(3, confirm=True)

        assert flow.id == 3
        assert flow.is_active is False
        args, _ = http.request.call_args
        assert args == ("DELETE", "http://testserver/api/area-flows/3")

    def test_delete_without_echo_returns_none(self, http, ok):
        http.request.return_value = ok(None, message="Flujo desactivado")

        assert area_flow_service.delete_area_flow(3, confirm=True) is None
