"""Tests for the Flask user context middleware and the metrics endpoint."""

import pytest
from flask import Flask, g, request

from outboundiq.monitoring import setup_metrics_endpoint
from outboundiq.tracking.context import UserContext, get_user_context
from outboundiq.tracking.middleware import setup_user_context_tracking


@pytest.fixture
def app():
    application = Flask(__name__)
    application.config["TESTING"] = True

    def resolver():
        user_id = request.headers.get("X-User")
        if user_id == "boom":
            raise RuntimeError("resolver failed")
        return UserContext(user_id=user_id, context="authenticated") if user_id else None

    setup_user_context_tracking(application, resolver)
    setup_metrics_endpoint(application)

    @application.route("/whoami")
    def whoami():
        context = get_user_context()
        stored = g.outboundiq_user_context
        assert stored is context
        return context.user_id if context else "anonymous"

    return application


@pytest.fixture
def client(app):
    return app.test_client()


class TestUserContextMiddleware:
    def test_context_set_for_request(self, client):
        response = client.get("/whoami", headers={"X-User": "42"})
        assert response.status_code == 200
        assert response.get_data(as_text=True) == "42"

    def test_anonymous_request(self, client):
        assert client.get("/whoami").get_data(as_text=True) == "anonymous"

    def test_failing_resolver_does_not_fail_request(self, client):
        response = client.get("/whoami", headers={"X-User": "boom"})
        assert response.status_code == 200
        assert response.get_data(as_text=True) == "anonymous"

    def test_context_cleared_after_request(self, client):
        client.get("/whoami", headers={"X-User": "42"})
        assert get_user_context() is None


def test_metrics_endpoint(client):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert b"outboundiq_calls_tracked_total" in response.data
