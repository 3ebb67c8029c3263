from fastapi.testclient import TestClient


def test_health_endpoint(client: TestClient) -> None:
    response = client.get('/health')
    assert response.status_code == 200
    assert response.headers.get('x-trace-id')
    payload = response.json()
    assert payload['status'] == 'ok'
    assert payload['service'] == 'reposcope'


def test_trace_id_header_propagates_incoming_value(client: TestClient) -> None:
    response = client.get('/health', headers={'x-trace-id': 'trace-from-client'})
    assert response.status_code == 200
    assert response.headers.get('x-trace-id') == 'trace-from-client'


def test_health_deps_reports_database_and_skips_unconfigured_redis(client: TestClient) -> None:
    response = client.get('/health/deps')
    assert response.status_code == 200
    assert response.json() == {'database': True, 'redis': None, 'all_healthy': True}


def test_metrics_endpoint(client: TestClient) -> None:
    client.get('/health')
    response = client.get('/metrics')
    assert response.status_code == 200
    assert 'reposcope_http_request_duration_seconds' in response.text
