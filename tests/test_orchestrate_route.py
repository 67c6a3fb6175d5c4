from __future__ import annotations


def test_sequential_round_trip(make_client, store, backends):
    store.docs["p"] = {"mode": "sequential", "steps": ["a", "b"]}
    backends.on("a", content=b'{"stage":"a"}', headers={"content-type": "application/json"})
    backends.on("b", status=200, content=b'{"stage":"b"}', headers={"content-type": "application/vnd.b+json"})

    resp = make_client().post(
        "/orchestrate/p/v1/run?debug=1", content=b'{"in":1}', headers={"content-type": "application/json"}
    )

    assert backends.hosts_called() == ["a", "b"]
    assert backends.requests[0].content == b'{"in":1}'
    assert backends.requests[1].content == b'{"stage":"a"}'
    assert backends.requests[1].headers["content-type"] == "application/json"
    assert str(backends.requests[1].url) == "http://b:8080/v1/run?debug=1"
    assert resp.status_code == 200
    assert resp.content == b'{"stage":"b"}'
    assert resp.headers["content-type"] == "application/vnd.b+json"


def test_sequential_failure_envelope(make_client, store, backends):
    store.docs["p"] = {"mode": "sequential", "steps": ["a", "b", "c"]}
    backends.on("a", status=503, content=b"down")

    resp = make_client().post("/orchestrate/p", json={})

    assert resp.status_code == 503
    assert resp.json() == {"error": "Step failed", "step": "a", "status": 503, "body": "down"}
    assert backends.hosts_called() == ["a"]


def test_parallel_round_trip(make_client, store, backends):
    store.docs["fan"] = {"mode": "parallel", "steps": ["x", "y"]}
    backends.on("x", json_body={"v": 1})
    backends.on("y", json_body={"v": 2})

    resp = make_client().post("/orchestrate/fan", json={"q": "hi"})

    assert resp.status_code == 200
    assert resp.json() == {"x": {"v": 1}, "y": {"v": 2}}


def test_parallel_failure_is_502_without_partial_results(make_client, store, backends):
    store.docs["fan"] = {"mode": "parallel", "steps": ["x", "y"]}
    backends.on("x", json_body={"v": 1})
    backends.on("y", status=500, content=b"nope")

    resp = make_client().post("/orchestrate/fan", json={})
    body = resp.json()

    assert resp.status_code == 502
    assert body["error"] == "Parallel execution failed"
    assert body["step"] == "y"
    assert "x" not in body
    assert {"v": 1} not in body.values()


def test_get_without_body_keeps_method(make_client, store, backends):
    store.docs["p"] = {"mode": "sequential", "steps": ["a"]}
    backends.on("a", content=b"ok")

    make_client().get("/orchestrate/p")
    assert backends.requests[0].method == "GET"


def test_empty_steps_rejected_before_any_backend_call(make_client, store, backends):
    store.docs["empty"] = {"mode": "sequential", "steps": []}

    resp = make_client().post("/orchestrate/empty", json={})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Pipeline has no steps"}
    assert backends.requests == []


def test_invalid_mode_is_400(make_client, store):
    store.docs["odd"] = {"mode": "round-robin", "steps": ["a"]}
    resp = make_client().post("/orchestrate/odd")
    assert resp.status_code == 400
    assert "mode" in resp.json()["error"]


def test_unknown_pipeline_is_500_and_not_cached(make_client, store):
    client = make_client()

    resp = client.post("/orchestrate/missing", json={})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Pipeline not found: missing"}
    assert client.app.state.cache.peek("missing") is None


def test_malformed_definition_is_500(make_client, store):
    store.docs["bad"] = b"{nope"
    resp = make_client().post("/orchestrate/bad")
    assert resp.status_code == 500
    assert "Malformed pipeline definition" in resp.json()["error"]


def test_definition_is_cached_between_requests(make_client, store, clock, backends):
    store.docs["p"] = {"mode": "sequential", "steps": ["a"]}
    backends.on("a", content=b"ok")
    client = make_client()

    client.post("/orchestrate/p")
    client.post("/orchestrate/p")
    assert store.calls == ["p"]

    clock.advance(30.0)
    client.post("/orchestrate/p")
    assert store.calls == ["p", "p"]


def test_missing_pipeline_name_is_400(make_client, store):
    client = make_client()
    for path in ("/orchestrate", "/orchestrate/"):
        resp = client.post(path)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Pipeline name missing"}
    assert store.calls == []


def test_escaped_sub_path_reaches_steps_as_sent(make_client, store, backends):
    store.docs["p"] = {"mode": "sequential", "steps": ["a"]}
    backends.on("a", content=b"done")

    resp = make_client().post("/orchestrate/p/a%3Fb/c%2Fd?x=1", content=b"{}")

    assert resp.status_code == 200
    sent = backends.requests[0].url
    assert sent.host == "a"
    assert sent.raw_path == b"/a%3Fb/c%2Fd?x=1"
