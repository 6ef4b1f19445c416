import socketio
from fastapi.testclient import TestClient

from weavegraph.config import Settings
from weavegraph.core.JobBridge import JobRun
from weavegraph.server.main import create_app
from weavegraph.server.trace.socket_server import create_socket_app


class StubRunner:
    async def trigger(self, job_kind, payload, idempotency_key=None):
        self.payload = payload
        return "run_1"

    async def retrieve(self, job_id):
        return JobRun("COMPLETED", output={"result": f"echo {self.payload['prompt']}"})


class StubMedia:
    async def crop(self, image_url, x, y, width, height):
        return image_url + "#crop"

    async def upload(self, content, filename, resource_type="image"):
        return f"https://res.cloudinary.com/demo/{resource_type}/upload/{filename}"


async def no_sleep(seconds):
    pass


class TestEditorApi:

    def setup_method(self):
        self.app = create_app(Settings(), runner=StubRunner(), media=StubMedia(), sleep=no_sleep)
        self.traces = []
        self.app.state.emitter.on_trace(self.traces.append)
        self.client = TestClient(self.app)

    def teardown_method(self):
        self.client.close()

    def add(self, type, id, **data):
        response = self.client.post("/api/nodes", json={"type": type, "id": id, "data": data})
        assert response.status_code == 201
        return response.json()

    def test_health(self):
        assert self.client.get("/health").json() == {"status": "ok"}

    def test_node_types(self):
        assert "run-llm" in self.client.get("/api/node-types").json()

    def test_create_node(self):
        body = self.add("run-llm", "L")
        assert body["type"] == "run-llm"
        assert body["inputs"] == ["system", "prompt", "image"]
        assert body["outputs"] == ["result"]

    def test_bad_node_requests_are_400(self):
        assert self.client.post("/api/nodes", json={"type": "teleport"}).status_code == 400
        assert self.client.post("/api/nodes", json={"type": "crop-image", "data": {"width": 0}}).status_code == 400
        self.add("text", "T")
        assert self.client.post("/api/nodes", json={"type": "text", "id": "T"}).status_code == 400

    def test_run_flow(self):
        self.add("text", "T", text="hello")
        self.add("run-llm", "L")
        edge = self.client.post("/api/edges", json={
            "source": "T", "sourceHandle": "text", "target": "L", "targetHandle": "prompt",
        })
        assert edge.status_code == 201
        assert edge.json()["id"] == "T:text->L:prompt"

        run = self.client.post("/api/nodes/L/run").json()
        assert run["status"] == "completed"
        assert run["output"] == {"result": "echo hello"}

        state = self.client.get("/api/nodes/L/state").json()
        assert state == {"nodeId": "L", "status": "completed", "error": None, "data": {"result": "echo hello"}}

        statuses = [t["status"] for t in self.traces if t["type"] == "status"]
        assert statuses == ["running", "completed"]
        assert all("ts" in t for t in self.traces)

    def test_invalid_connection_is_400(self):
        self.add("text", "T")
        self.add("run-llm", "L")
        response = self.client.post("/api/edges", json={
            "source": "T", "sourceHandle": "text", "target": "L", "targetHandle": "image",
        })
        assert response.status_code == 400

    def test_unknown_node_is_404(self):
        assert self.client.get("/api/nodes/missing/state").status_code == 404
        assert self.client.post("/api/nodes/missing/run").status_code == 404
        assert self.client.patch("/api/nodes/missing", json={"data": {"text": "x"}}).status_code == 404
        assert self.client.delete("/api/nodes/missing").status_code == 404
        assert self.client.delete("/api/edges/missing").status_code == 404

    def test_patch_node_data_and_position(self):
        self.add("crop-image", "C")
        body = self.client.patch("/api/nodes/C", json={"data": {"x": 10}, "position": {"x": 5, "y": 6}}).json()
        assert body["data"]["x"] == 10
        assert body["data"]["width"] == 100
        assert body["position"] == {"x": 5, "y": 6}

        assert self.client.patch("/api/nodes/C", json={"data": {"width": 0}}).status_code == 400

    def test_undo_redo(self):
        self.add("text", "T")
        assert self.client.post("/api/history/undo").json() == {"changed": True, "canUndo": False, "canRedo": True}
        assert self.client.get("/api/nodes/T/state").status_code == 404
        assert self.client.post("/api/history/redo").json()["changed"] is True
        assert self.client.get("/api/nodes/T/state").status_code == 200

    def test_workflow_round_trip(self):
        self.add("text", "T", text="hello")
        self.add("run-llm", "L")
        self.client.post("/api/edges", json={
            "source": "T", "sourceHandle": "text", "target": "L", "targetHandle": "prompt",
        })
        workflow = self.client.get("/api/workflow").json()
        assert [n["id"] for n in workflow["nodes"]] == ["T", "L"]

        self.client.delete("/api/nodes/L")
        restored = self.client.put("/api/workflow", json=workflow)
        assert restored.status_code == 200
        assert restored.json() == workflow

    def test_put_invalid_workflow_is_400(self):
        response = self.client.put("/api/workflow", json={"nodes": [{"id": "x", "type": "nope"}], "edges": []})
        assert response.status_code == 400

    def test_upload(self):
        self.add("image-upload", "I")
        response = self.client.post(
            "/api/nodes/I/upload",
            params={"filename": "cat.png"},
            content=b"\x89PNG",
            headers={"content-type": "image/png"},
        )
        assert response.json()["status"] == "completed"
        state = self.client.get("/api/nodes/I/state").json()
        assert state["data"] == {"imageUrl": "https://res.cloudinary.com/demo/image/upload/cat.png"}

    def test_empty_upload_is_400(self):
        self.add("image-upload", "I")
        assert self.client.post("/api/nodes/I/upload", params={"filename": "a.png"}).status_code == 400

    def test_socket_app_wraps_fastapi(self):
        assert isinstance(create_socket_app(self.app, self.app.state.emitter), socketio.ASGIApp)
