import asyncio

import pytest

from weavegraph.core.Errors import ValidationError
from weavegraph.core.Node import (
    CropImageData,
    ExecutionContext,
    ExtractFrameData,
    Node,
    RunLLMNode,
    TextNode,
    VideoUploadData,
)
from weavegraph.core.NodePort import InputHandle, OutputHandle
from weavegraph.core.Types import Capability, NodeKind


class TestNodes:

    def test_every_kind_is_registered(self):
        assert set(Node._node_registry) == set(NodeKind)

    def test_create_node_by_kind_string(self):
        node = Node.create_node("text", id="t1", data={"text": "hi"})
        assert isinstance(node, TextNode)
        assert node.kind == NodeKind.TEXT
        assert node.data.text == "hi"

    def test_create_node_generates_id(self):
        a = Node.create_node(NodeKind.RUN_LLM)
        b = Node.create_node(NodeKind.RUN_LLM)
        assert a.id and a.id != b.id

    def test_unknown_kind_raises(self):
        with pytest.raises(ValueError):
            Node.create_node("not-a-kind")

    def test_register_twice_raises(self):
        with pytest.raises(ValueError):
            Node.register(NodeKind.TEXT)(type("Other", (Node,), {}))

    def test_data_accepts_camel_and_snake_case(self):
        assert VideoUploadData.from_dict({"mediaUrl": "u", "mediaType": "video/mp4"}).media_url == "u"
        assert VideoUploadData.from_dict({"media_url": "u"}).media_url == "u"
        assert VideoUploadData.from_dict({"unknown": 1}) == VideoUploadData()

    def test_to_dict_is_camel_case_without_empty_fields(self):
        node = Node.create_node("image-upload", data={"imageUrl": "https://example.com/a.png", "label": None})
        assert node.data.to_dict() == {"imageUrl": "https://example.com/a.png"}

    @pytest.mark.parametrize("values", [
        {"x": -1},
        {"y": 101},
        {"width": 0},
        {"height": "50"},
        {"x": True},
    ])
    def test_crop_data_is_validated(self, values):
        with pytest.raises(ValidationError):
            CropImageData.from_dict(values)

    def test_timestamp_must_be_non_negative(self):
        with pytest.raises(ValidationError):
            ExtractFrameData(timestamp=-0.5).validate()
        assert ExtractFrameData(timestamp=0).timestamp == 0

    def test_with_data_returns_new_validated_data(self):
        node = Node.create_node("crop-image")
        data = node.with_data(x=25)
        assert data.x == 25
        assert node.data.x == 0
        with pytest.raises(ValidationError):
            node.with_data(colour="red")

    def test_handles_carry_capabilities(self):
        node = Node.create_node("run-llm", id="llm")
        assert isinstance(node.inputs["image"], InputHandle)
        assert node.inputs["image"].capability == Capability.IMAGE
        assert node.inputs["prompt"].required is True
        assert node.inputs["system"].required is False
        result = node.outputs["result"]
        assert isinstance(result, OutputHandle)
        assert result.isOutputHandle() and not result.isInputHandle()
        assert node.output_fields() == ["result"]

    def test_output_field_names_follow_source_convention(self):
        fields = {kind: Node.create_node(kind).output_fields() for kind in NodeKind}
        assert fields[NodeKind.TEXT] == ["text"]
        assert fields[NodeKind.PROMPT] == ["prompt"]
        assert fields[NodeKind.IMAGE_UPLOAD] == ["imageUrl"]
        assert fields[NodeKind.VIDEO_UPLOAD] == ["mediaUrl"]
        assert fields[NodeKind.CROP_IMAGE] == ["imageUrl"]
        assert fields[NodeKind.EXTRACT_FRAME] == ["imageUrl"]

    def test_prepare_rejects_wrong_value_type(self):
        node = Node.create_node("run-llm")
        with pytest.raises(ValidationError):
            node.prepare({"prompt": 42, "system": None, "image": None})

    def test_prepare_builds_minimal_llm_payload(self):
        node = Node.create_node("run-llm")
        assert node.prepare({"prompt": "hi", "system": "", "image": None}) == {"prompt": "hi"}

    def test_source_nodes_are_not_runnable(self):
        for kind in ("text", "prompt", "image-upload", "video-upload"):
            node = Node.create_node(kind)
            assert node.isSourceNode()
            assert not node.isRunnable()
        assert Node.create_node("run-llm").isRunnable()
        assert not Node.create_node("run-llm").isSourceNode()

    def test_job_node_compute_goes_through_bridge(self):
        class RecordingBridge:
            async def run(self, job_kind, payload, output_fields=None):
                self.call = (job_kind, payload, output_fields)
                return {"result": "ok"}

        bridge = RecordingBridge()
        node = Node.create_node("run-llm", id="llm")
        context = ExecutionContext(node, {"prompt": "p"}, bridge=bridge)
        assert asyncio.run(node.compute(context)) == {"result": "ok"}
        assert bridge.call == ("run-llm-task", {"prompt": "p"}, ["result"])
        assert RunLLMNode.job_kind == "run-llm-task"

    def test_copy_and_equality(self):
        node = Node.create_node("text", id="t", data={"text": "a"})
        clone = node.copy()
        assert clone == node and clone is not node
        assert clone != Node.create_node("prompt", id="t")

    @pytest.mark.parametrize("value,capability,expected", [
        (None, Capability.IMAGE, True),
        ("https://res.cloudinary.com/demo/image/upload/a.png", Capability.IMAGE, True),
        ("data:image/png;base64,iVBORw0KGgo=", Capability.IMAGE, True),
        ("data:video/mp4;base64,AAAA", Capability.IMAGE, False),
        ("data:video/mp4;base64,AAAA", Capability.VIDEO, True),
        ("data:image/jpeg;base64,/9j/", Capability.VIDEO, False),
        ("data:image/png;base64,iVBORw0KGgo=", Capability.TEXT, False),
        ("data:text/plain,hello", Capability.TEXT, True),
        ("plain words", Capability.TEXT, True),
        (42, Capability.TEXT, False),
    ])
    def test_capability_validation(self, value, capability, expected):
        assert Capability.validate(value, capability) is expected

    def test_prepare_rejects_video_data_url_on_image_input(self):
        node = Node.create_node("run-llm")
        with pytest.raises(ValidationError):
            node.prepare({"prompt": "hi", "system": None, "image": "data:video/mp4;base64,AAAA"})
