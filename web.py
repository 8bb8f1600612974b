#!/usr/bin/env python3
"""
Crop Rotation Web — Flask + WebSocket JSON server for browser frontends.

Each WebSocket connection gets its own RotationAdvisor instance. After every
client action the full session snapshot is pushed back as JSON. Rendering is
left to the client; this server speaks JSON only.
"""
import json
import logging

logger = logging.getLogger(__name__)

from flask import Flask, jsonify, request
from flask_sock import Sock

from advisor import RotationAdvisor
from garden_engine import ConfigurationError, InternalConsistencyError
from report import activation_from_dict, parse_upgrade_keys
from settings import DEFAULTS, load_settings

app = Flask(__name__)
sock = Sock(app)


def _error(message, status=400):
    return jsonify({"error": message}), status


def _merged(base, overrides):
    """base settings with client overrides applied."""
    if overrides is not None and not isinstance(overrides, dict):
        raise ConfigurationError("Settings must be given as an object")
    merged = dict(base or DEFAULTS)
    merged.update(overrides or {})
    return merged


@app.route("/api/health")
def health():
    return jsonify({"status": "ok"})


@app.route("/api/plan", methods=["POST"])
def plan_once():
    """Stateless planning: plots + settings + confirmed history in, snapshot out."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error("Expected a JSON object")

    try:
        advisor = RotationAdvisor(payload.get("plots") or [], _merged(DEFAULTS, payload.get("settings")))
        history = payload.get("history") or []
        if not isinstance(history, list):
            return _error("History must be a list")
        for item in history:
            if not isinstance(item, dict):
                return _error("Malformed history entry")
            activation = activation_from_dict(item.get("activation") or {})
            if activation is None:
                return _error("Malformed activation in history")
            if not isinstance(item.get("success"), bool):
                return _error("History entry needs success: true or false")
            observed = parse_upgrade_keys(item.get("actual_upgrades")) or None
            if not advisor.record_outcome(item["success"], observed, activation):
                return _error(f"{activation.label} is not available at that point in the history")
        snapshot = advisor.snapshot()
    except ConfigurationError as e:
        return _error(str(e))
    except InternalConsistencyError as e:
        logger.error("Planning failed: %s", e)
        return _error(str(e), status=500)
    return jsonify(snapshot)


@sock.route("/ws")
def websocket(ws):
    """WebSocket handler — one garden per connection."""
    advisor = None
    settings = load_settings()

    try:
        while True:
            data = ws.receive()
            if data is None:
                break
            try:
                action = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("Invalid JSON from client: %s", data)
                continue
            if not isinstance(action, dict):
                logger.warning("Ignoring non-object message: %s", data)
                continue

            advisor, reply = _handle_action(advisor, action, settings)
            ws.send(json.dumps(reply))
    except Exception:
        logger.error("WebSocket receive error", exc_info=True)


def _handle_action(advisor, action, settings=None):
    """Dispatch a client action and return (advisor, reply).

    The advisor is created by a 'configure' action; every other action needs
    one. Configuration errors are reported to the client and leave the
    session as it was.
    """
    cmd = action.get("action", "")

    if cmd == "configure":
        try:
            configured = RotationAdvisor(action.get("plots") or [], _merged(settings, action.get("settings")))
        except ConfigurationError as e:
            return advisor, {"error": str(e)}
        return configured, configured.snapshot()

    if advisor is None:
        return advisor, {"error": "Garden not configured"}

    try:
        if cmd == "plan":
            pass

        elif cmd == "settings":
            advisor.update_settings(action.get("settings") or {})

        elif cmd == "outcome":
            activation = None
            if action.get("activation"):
                activation = activation_from_dict(action["activation"])
                if activation is None:
                    return advisor, {"error": "Malformed activation"}
            if not isinstance(action.get("success"), bool):
                return advisor, {"error": "Outcome needs success: true or false"}
            observed = parse_upgrade_keys(action.get("actual_upgrades")) or None
            if not advisor.record_outcome(action["success"], observed, activation):
                return advisor, {"error": "No legal activation to record"}

        elif cmd == "undo":
            if not advisor.undo():
                return advisor, {"error": "Nothing to undo"}

        elif cmd == "reset":
            advisor.reset(action.get("plots"))

        else:
            return advisor, {"error": f"Unknown action: {cmd!r}"}
    except ConfigurationError as e:
        return advisor, {"error": str(e)}

    return advisor, advisor.snapshot()


def main():
    """Entry point for the web server."""
    import argparse
    parser = argparse.ArgumentParser(description="Crop Rotation Web Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=5000, help="Port (default: 5000)")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    args = parser.parse_args()

    print(f"Starting crop rotation server at http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
