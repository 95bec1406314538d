def test_health(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["status"] == "ok"


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["api_base"] == "/api/v1"
