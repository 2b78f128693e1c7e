import pytest
from fastapi.testclient import TestClient

from cpq_connector.api.cpq_router import get_cpq_client
from cpq_connector.app import app
from cpq_connector.integrations.cpq_client import CPQClient, CPQCredentials
from cpq_connector.integrations.cpq_errors import CPQApiError


def _fake_client(responder) -> CPQClient:
    def transport(method, url, *, headers, params, body, timeout):
        return responder(method, url, params, body)

    return CPQClient(
        credentials=CPQCredentials(access_key="AK", public_key="PK", private_key="PV", base_url="https://cpq.test"),
        transport=transport,
        sleep=lambda _s: None,
    )


@pytest.fixture
def api():
    def _install(responder):
        app.dependency_overrides[get_cpq_client] = lambda: _fake_client(responder)
        return TestClient(app)

    yield _install
    app.dependency_overrides.clear()


def test_health() -> None:
    resp = TestClient(app).get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_operations_catalogue() -> None:
    resp = TestClient(app).get("/api/v1/cpq/operations")

    assert resp.status_code == 200
    ops = resp.json()["operations"]
    assert len(ops) == 27
    assert {"resource": "quotes", "operation": "getAll"}.items() <= ops[1].items()


def test_run_operation_returns_paired_results(api) -> None:
    client = api(lambda method, url, params, body: {"id": url.rsplit("/", 1)[-1]})

    resp = client.post(
        "/api/v1/cpq/quotes/get",
        json={"items": [{"quote_id": "q1"}, {"quote_id": "q2"}]},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["resource"] == "quotes"
    assert data["operation"] == "get"
    assert data["count"] == 2
    assert data["results"] == [
        {"json": {"id": "q1"}, "paired_item": 0},
        {"json": {"id": "q2"}, "paired_item": 1},
    ]


def test_run_operation_defaults_to_one_item(api) -> None:
    client = api(lambda method, url, params, body: [{"id": 1}])

    resp = client.post("/api/v1/cpq/templates/getAll", json={})

    assert resp.status_code == 200
    assert resp.json()["results"] == [{"json": {"id": 1}, "paired_item": 0}]


def test_unknown_operation_is_404(api) -> None:
    client = api(lambda *a: None)

    resp = client.post("/api/v1/cpq/taxCodes/delete", json={})

    assert resp.status_code == 404


def test_input_error_is_400(api) -> None:
    client = api(lambda *a: None)

    resp = client.post("/api/v1/cpq/quotes/get", json={"items": [{}]})

    assert resp.status_code == 400
    assert "quote_id" in resp.json()["detail"]


def test_invalid_params_are_422(api) -> None:
    client = api(lambda *a: None)

    resp = client.post("/api/v1/cpq/quotes/getAll", json={"items": [{"limit": 0}]})

    assert resp.status_code == 422


def test_api_error_is_502_with_details(api) -> None:
    def responder(method, url, params, body):
        raise CPQApiError("HTTP 401: Unauthorized", status_code=401, response_body="Unauthorized", method=method, url=url)

    client = api(responder)

    resp = client.post("/api/v1/cpq/quotes/get", json={"items": [{"quote_id": "q1"}]})

    assert resp.status_code == 502
    detail = resp.json()["detail"]
    assert detail["status_code"] == 401
    assert detail["url"] == "https://cpq.test/api/quotes/q1"


def test_continue_on_fail_returns_error_records(api) -> None:
    def responder(method, url, params, body):
        if url.endswith("/bad"):
            raise CPQApiError("HTTP 404: missing", status_code=404)
        return None

    client = api(responder)

    resp = client.post(
        "/api/v1/cpq/quotes/delete",
        json={"items": [{"quote_id": "bad"}, {"quote_id": "ok"}], "continue_on_fail": True},
    )

    assert resp.status_code == 200
    assert resp.json()["results"] == [
        {"json": {"error": "HTTP 404: missing"}, "paired_item": 0},
        {"json": {"id": "ok", "success": True}, "paired_item": 1},
    ]


def test_missing_credentials_is_500(monkeypatch) -> None:
    for name in ("CPQ_ACCESS_KEY", "CPQ_PUBLIC_KEY", "CPQ_PRIVATE_KEY"):
        monkeypatch.delenv(name, raising=False)

    resp = TestClient(app).post("/api/v1/cpq/quotes/get", json={"items": [{"quote_id": "q1"}]})

    assert resp.status_code == 500
    assert "CPQ_ACCESS_KEY" in resp.json()["detail"]
