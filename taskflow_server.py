#!/usr/bin/env python3
"""
TaskFlow API Server
-------------------
JSON API over the TaskFlow core, backed by the SQLite entity store.

Usage:
    python taskflow_server.py --port 3000
    python taskflow_server.py --config config.yaml --db /tmp/taskflow.db

Caller identity:
    Authentication happens upstream. The identity layer in front of this
    server resolves the caller and forwards the user id in X-User-Id.

API:
    GET  /api/dashboard                     → personal dashboard
    GET  /api/projects                      → caller's projects
    POST /api/projects                      → { name, description }
    GET  /api/projects/<id>                 → project + members
    POST /api/projects/<id>/members         → { user_id }
    GET  /api/projects/<id>/tasks           → task cards
    GET  /api/projects/<id>/board           → tasks grouped by status
    GET  /api/projects/<id>/analytics       → project analytics
    GET  /api/projects/<id>/activity        → activity feed (?limit=N)
    POST /api/tasks                         → create task
    PUT  /api/tasks/<id>                    → partial update
    POST /api/tasks/<id>/status             → { status }
    GET  /api/tasks/<id>/comments           → comments
    POST /api/tasks/<id>/comments           → { body }
    POST /api/users                         → { name, email, role }
    GET  /api/users/<id>                    → user
"""

import argparse
import logging
import os
import sys

from flask import Flask, jsonify, request, abort

from taskflow.board import board_to_dict
from taskflow.config import Config
from taskflow.errors import NotAuthorized, NotFound, TaskflowError, ValidationError
from taskflow.notify import ALL, ChangeNotifier
from taskflow.schema import TaskInput
from taskflow.service import TaskflowService
from taskflow.store import EntityStore

logger = logging.getLogger("taskflow_server")

app = Flask(__name__)

# Shared across requests; subscribers register here
notifier = ChangeNotifier()


def _log_change(topic: str, project_id: str, **kwargs):
    logger.debug(f"change {topic} project={project_id} {kwargs}")


notifier.subscribe(ALL, _log_change)


# ── Config ───────────────────────────────────────────────────────────────────

def get_service() -> TaskflowService:
    cfg = Config.load()
    return TaskflowService(EntityStore(cfg.db_path), notifier=notifier, config=cfg)


def caller_id() -> str:
    """User id resolved by the upstream identity layer."""
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        abort(401, "X-User-Id header is required")
    return user_id


def json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


# ── Errors ───────────────────────────────────────────────────────────────────

@app.errorhandler(TaskflowError)
def handle_taskflow_error(e: TaskflowError):
    if isinstance(e, ValidationError):
        code = 400
    elif isinstance(e, NotAuthorized):
        code = 403
    elif isinstance(e, NotFound):
        code = 404
    else:
        code = 500
    return jsonify({"error": str(e), "kind": type(e).__name__}), code


@app.errorhandler(401)
def handle_unauthenticated(e):
    return jsonify({"error": e.description, "kind": "Unauthenticated"}), 401


# ── Routes ───────────────────────────────────────────────────────────────────

@app.route("/api/dashboard")
def api_dashboard():
    return jsonify(get_service().get_user_dashboard(caller_id()).to_dict())


@app.route("/api/projects", methods=["GET"])
def api_projects():
    projects = get_service().get_user_projects(caller_id())
    return jsonify({"projects": [p.to_dict() for p in projects], "count": len(projects)})


@app.route("/api/projects", methods=["POST"])
def api_create_project():
    data = json_body()
    project = get_service().create_project(
        data.get("name", ""), data.get("description", ""), caller_id()
    )
    return jsonify({"project": project.to_dict()}), 201


@app.route("/api/projects/<project_id>")
def api_project(project_id):
    return jsonify({"project": get_service().get_project(project_id, caller_id())})


@app.route("/api/projects/<project_id>/members", methods=["POST"])
def api_add_member(project_id):
    data = json_body()
    user_id = data.get("user_id")
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id is required")
    project = get_service().add_project_member(project_id, user_id.strip(), caller_id())
    return jsonify({"project": project.to_dict()})


@app.route("/api/projects/<project_id>/tasks")
def api_project_tasks(project_id):
    cards = get_service().get_project_tasks(project_id, caller_id())
    return jsonify({"tasks": cards, "count": len(cards)})


@app.route("/api/projects/<project_id>/board")
def api_board(project_id):
    buckets = get_service().list_project_tasks_by_status(project_id, caller_id())
    return jsonify({"board": board_to_dict(buckets)})


@app.route("/api/projects/<project_id>/analytics")
def api_analytics(project_id):
    return jsonify(get_service().get_project_analytics(project_id, caller_id()).to_dict())


@app.route("/api/projects/<project_id>/activity")
def api_activity(project_id):
    limit = request.args.get("limit")
    if limit is not None:
        try:
            limit = int(limit)
        except ValueError:
            raise ValidationError(f"Invalid limit: {limit}")
        if limit < 0:
            raise ValidationError(f"Invalid limit: {limit}")
    items = get_service().get_project_activity(project_id, caller_id(), limit=limit)
    return jsonify({"activity": [i.to_dict() for i in items], "count": len(items)})


@app.route("/api/tasks", methods=["POST"])
def api_create_task():
    data = json_body()
    task = get_service().create_task(TaskInput.from_dict(data), caller_id())
    return jsonify({"task": task.to_dict(), "id": task.task_id}), 201


@app.route("/api/tasks/<task_id>", methods=["PUT"])
def api_update_task(task_id):
    task = get_service().update_task(task_id, json_body(), caller_id())
    return jsonify({"task": task.to_dict()})


@app.route("/api/tasks/<task_id>/status", methods=["POST"])
def api_task_status(task_id):
    data = json_body()
    if "status" not in data:
        raise ValidationError("status is required")
    task = get_service().update_task_status(task_id, data["status"], caller_id())
    return jsonify({"task": task.to_dict()})


@app.route("/api/tasks/<task_id>/comments", methods=["GET"])
def api_comments(task_id):
    comments = get_service().list_comments(task_id, caller_id())
    return jsonify({"comments": [c.to_dict() for c in comments], "count": len(comments)})


@app.route("/api/tasks/<task_id>/comments", methods=["POST"])
def api_add_comment(task_id):
    data = json_body()
    comment = get_service().add_comment(task_id, data.get("body", ""), caller_id())
    return jsonify({"comment": comment.to_dict()}), 201


@app.route("/api/users", methods=["POST"])
def api_register_user():
    data = json_body()
    user = get_service().register_user(
        data.get("name", ""),
        email=data.get("email", ""),
        role=data.get("role", "member"),
        user_id=data.get("user_id"),
    )
    return jsonify({"user": user.to_dict()}), 201


@app.route("/api/users/<user_id>")
def api_user(user_id):
    return jsonify({"user": get_service().get_user(user_id).to_dict()})


@app.route("/health")
def health():
    return jsonify({"status": "ok", "db": Config.load().db_path})


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="TaskFlow API Server")
    parser.add_argument("--host", help="Bind address (overrides config)")
    parser.add_argument("--port", type=int, help="Port (overrides config)")
    parser.add_argument("--config", help="Path to config.yaml (overrides TASKFLOW_CONFIG)")
    parser.add_argument("--db", help="Path to taskflow.db (overrides TASKFLOW_DB)")
    args = parser.parse_args()

    if args.config:
        os.environ["TASKFLOW_CONFIG"] = args.config
    if args.db:
        os.environ["TASKFLOW_DB"] = args.db

    cfg = Config.load()
    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s [taskflow] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    host = args.host or cfg.host
    port = args.port or cfg.port
    logger.info(f"Starting TaskFlow API on http://{host}:{port} (db={cfg.db_path})")
    app.run(host=host, port=port, debug=False, threaded=True)
