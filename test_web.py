"""Tests for web.py — action dispatch and the JSON endpoints."""

import pytest

from advisor import RotationAdvisor
from web import _handle_action, app

# ── Helpers ──────────────────────────────────────────────────────────────────

PLOTS = [{"color1": "yellow", "color2": "red"}, {"color1": "blue", "color2": "red"}]
FAST = {"lookahead_depth": 2}


def _configure(plots=PLOTS, settings=FAST):
    advisor, reply = _handle_action(None, {"action": "configure", "plots": plots, "settings": settings})
    assert "error" not in reply
    return advisor, reply


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


# ── configure ────────────────────────────────────────────────────────────────

class TestHandleActionConfigure:

    def test_configure_creates_advisor(self):
        advisor, reply = _configure()
        assert isinstance(advisor, RotationAdvisor)
        assert reply["is_complete"] is False
        assert reply["settings"]["lookahead_depth"] == 2

    def test_configure_invalid_color(self):
        advisor, reply = _handle_action(None, {"action": "configure", "plots": [["yellow", "pink"]]})
        assert advisor is None
        assert "pink" in reply["error"]

    def test_configure_without_plots(self):
        advisor, reply = _handle_action(None, {"action": "configure"})
        assert advisor is None
        assert "error" in reply

    def test_failed_reconfigure_keeps_session(self):
        advisor, _ = _configure()
        same, reply = _handle_action(advisor, {"action": "configure", "plots": []})
        assert same is advisor
        assert "error" in reply

    def test_configure_bad_settings(self):
        advisor, reply = _handle_action(None, {"action": "configure", "plots": PLOTS,
                                               "settings": {"lookahead_depth": 0}})
        assert advisor is None
        assert "lookahead_depth" in reply["error"]

    def test_configure_flag_must_be_bool(self):
        advisor, reply = _handle_action(None, {"action": "configure", "plots": ["yellow/red"],
                                               "settings": {"enable_deep_search": "false"}})
        assert advisor is None
        assert "enable_deep_search" in reply["error"]

    def test_configure_settings_not_an_object(self):
        advisor, reply = _handle_action(None, {"action": "configure", "plots": PLOTS, "settings": [1]})
        assert advisor is None
        assert "error" in reply

    def test_server_settings_used_as_base(self):
        base = {"lookahead_depth": 1, "starting_seed_count": 10}
        advisor, reply = _handle_action(None, {"action": "configure", "plots": PLOTS}, base)
        assert advisor.config.lookahead_depth == 1
        assert reply["state"]["fields"][0]["t1"] == 10


# ── actions on a configured garden ───────────────────────────────────────────

class TestHandleActionSession:

    def test_actions_need_configuration(self):
        advisor, reply = _handle_action(None, {"action": "plan"})
        assert advisor is None
        assert reply == {"error": "Garden not configured"}

    def test_plan_returns_snapshot(self):
        advisor, _ = _configure()
        _, reply = _handle_action(advisor, {"action": "plan"})
        assert reply["next_activation"] is not None

    def test_outcome_with_recommendation(self):
        advisor, _ = _configure()
        _, reply = _handle_action(advisor, {"action": "outcome", "success": True})
        assert len(reply["history"]) == 1
        assert reply["can_undo"] is True

    def test_outcome_with_explicit_activation_and_upgrades(self):
        advisor, _ = _configure()
        activation = {"plot_index": 0, "field_index": 0, "color": "yellow"}
        _, reply = _handle_action(advisor, {"action": "outcome", "success": False,
                                            "activation": activation,
                                            "actual_upgrades": {"0:1": {"t2": 4, "t3": 1}}})
        field = next(f for f in reply["state"]["fields"] if (f["plot_index"], f["field_index"]) == (0, 1))
        assert (field["t2"], field["t3"]) == (4, 1)
        assert reply["state"]["plots"][0]["failed"] is True

    def test_outcome_malformed_activation(self):
        advisor, _ = _configure()
        _, reply = _handle_action(advisor, {"action": "outcome", "success": True,
                                            "activation": {"plot_index": "x"}})
        assert reply == {"error": "Malformed activation"}

    def test_outcome_illegal_activation(self):
        advisor, _ = _configure()
        activation = {"plot_index": 0, "field_index": 0, "color": "yellow"}
        _handle_action(advisor, {"action": "outcome", "success": True, "activation": activation})
        _, reply = _handle_action(advisor, {"action": "outcome", "success": True, "activation": activation})
        assert "error" in reply
        assert len(advisor.history) == 1

    def test_outcome_success_must_be_bool(self):
        advisor, _ = _configure()
        _, reply = _handle_action(advisor, {"action": "outcome", "success": "false"})
        assert "error" in reply
        assert len(advisor.history) == 0

    def test_undo(self):
        advisor, _ = _configure()
        _handle_action(advisor, {"action": "outcome", "success": True})
        _, reply = _handle_action(advisor, {"action": "undo"})
        assert reply["history"] == []
        _, reply = _handle_action(advisor, {"action": "undo"})
        assert reply == {"error": "Nothing to undo"}

    def test_settings_change(self):
        advisor, _ = _configure()
        _, reply = _handle_action(advisor, {"action": "settings", "settings": {"enable_deep_search": False}})
        assert reply["diagnostics"]["search_mode"] == "single-step"

    def test_invalid_settings_change(self):
        advisor, _ = _configure()
        _, reply = _handle_action(advisor, {"action": "settings", "settings": {"max_branching_factor": 0}})
        assert "error" in reply
        assert advisor.config.max_branching_factor == 500

    def test_reset_with_new_plots(self):
        advisor, _ = _configure()
        _handle_action(advisor, {"action": "outcome", "success": True})
        _, reply = _handle_action(advisor, {"action": "reset", "plots": ["red/blue"]})
        assert len(reply["state"]["plots"]) == 1
        assert reply["history"] == []

    def test_unknown_action(self):
        advisor, _ = _configure()
        _, reply = _handle_action(advisor, {"action": "harvest"})
        assert "harvest" in reply["error"]


# ── HTTP endpoints ───────────────────────────────────────────────────────────

class TestHttp:

    def test_health(self, client):
        assert client.get("/api/health").get_json() == {"status": "ok"}

    def test_plan(self, client):
        response = client.post("/api/plan", json={"plots": PLOTS, "settings": FAST})
        assert response.status_code == 200
        data = response.get_json()
        assert data["is_complete"] is False
        assert data["next_activation"]["plot_index"] in (0, 1)

    def test_plan_replays_history(self, client):
        history = [{"activation": {"plot_index": 0, "field_index": 0, "color": "yellow"}, "success": False}]
        data = client.post("/api/plan", json={"plots": PLOTS, "settings": FAST, "history": history}).get_json()
        assert data["state"]["plots"][0]["active"] is False
        assert len(data["history"]) == 1

    def test_plan_rejects_illegal_history(self, client):
        step = {"activation": {"plot_index": 0, "field_index": 0, "color": "yellow"}, "success": True}
        response = client.post("/api/plan", json={"plots": PLOTS, "history": [step, step]})
        assert response.status_code == 400

    def test_plan_history_success_must_be_bool(self, client):
        step = {"activation": {"plot_index": 0, "field_index": 0, "color": "yellow"}, "success": "false"}
        response = client.post("/api/plan", json={"plots": PLOTS, "history": [step]})
        assert response.status_code == 400
        assert "success" in response.get_json()["error"]

    def test_plan_bad_configuration(self, client):
        response = client.post("/api/plan", json={"plots": [["yellow", None]]})
        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_plan_requires_json_object(self, client):
        response = client.post("/api/plan", data="nope", content_type="text/plain")
        assert response.status_code == 400
