from dataclasses import dataclass, fields, replace
from typing import Optional, List, Dict, Any, Type, Callable, Union, TYPE_CHECKING

import logging
import re
import uuid

from .Errors import ValidationError
from .GraphPrimitives import Position
from .NodePort import InputHandle, OutputHandle
from .Types import Capability, NodeKind

if TYPE_CHECKING:
    from .JobBridge import JobBridge

logger = logging.getLogger(__name__)


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


# --- STATIC DATA ---
# One frozen dataclass per node kind. Edits go through dataclasses.replace so a
# snapshot can share the old instance safely.

@dataclass(frozen=True)
class NodeData:
    label: Optional[str] = None

    def validate(self) -> None:
        pass

    def to_dict(self) -> Dict[str, Any]:
        return {
            _to_camel(f.name): getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> 'NodeData':
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (raw or {}).items():
            name = _to_snake(key)
            if name in known:
                values[name] = value
            else:
                logger.debug(f"Ignoring unknown {cls.__name__} field '{key}'")
        data = cls(**values)
        data.validate()
        return data


@dataclass(frozen=True)
class TextData(NodeData):
    text: str = ""


@dataclass(frozen=True)
class PromptData(NodeData):
    prompt: str = ""


@dataclass(frozen=True)
class ImageUploadData(NodeData):
    image_url: Optional[str] = None


@dataclass(frozen=True)
class CropImageData(NodeData):
    x: float = 0
    y: float = 0
    width: float = 100
    height: float = 100

    def validate(self) -> None:
        for name in ("x", "y", "width", "height"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"Crop {name} must be a number, got {value!r}")
            if not 0 <= value <= 100:
                raise ValidationError(f"Crop {name} must be between 0 and 100 percent, got {value}")
        if self.width == 0 or self.height == 0:
            raise ValidationError("Crop width and height must be greater than zero")


@dataclass(frozen=True)
class VideoUploadData(NodeData):
    media_url: Optional[str] = None
    media_type: Optional[str] = None


@dataclass(frozen=True)
class ExtractFrameData(NodeData):
    timestamp: float = 0

    def validate(self) -> None:
        if isinstance(self.timestamp, bool) or not isinstance(self.timestamp, (int, float)):
            raise ValidationError(f"Timestamp must be a number, got {self.timestamp!r}")
        if self.timestamp < 0:
            raise ValidationError("Timestamp must be a non-negative number")


@dataclass(frozen=True)
class RunLLMData(NodeData):
    pass


class ExecutionContext:
    """
    Context object passed to a node's compute().
    Carries the gathered request plus the collaborators a run may call.
    """
    def __init__(self, node: 'Node', payload: Dict[str, Any], bridge: Optional['JobBridge'] = None, media: Any = None):
        self.node = node
        self.payload = payload
        self.bridge = bridge
        self.media = media


class Node:
    _node_registry: Dict[NodeKind, Type['Node']] = {}

    kind: NodeKind
    data_class: Type[NodeData] = NodeData
    # Name of the external job this node submits, if it runs through the job bridge
    job_kind: Optional[str] = None
    requires_media: bool = False

    @classmethod
    def register(cls, kind: NodeKind) -> Callable[[Type['Node']], Type['Node']]:
        """Decorator to register a node class for a node kind."""
        def decorator(subclass: Type['Node']) -> Type['Node']:
            if cls._node_registry.get(kind):
                raise ValueError(f"Node kind '{kind.value}' is already registered.")
            subclass.kind = kind
            cls._node_registry[kind] = subclass
            return subclass
        return decorator

    @classmethod
    def create_node(cls,
                    kind: Union[NodeKind, str],
                    id: Optional[str] = None,
                    position: Optional[Position] = None,
                    data: Union[NodeData, Dict[str, Any], None] = None) -> 'Node':
        """Factory method to create a node instance by kind."""
        try:
            kind = NodeKind(kind)
        except ValueError:
            raise ValueError(f"Unknown node kind '{kind}'") from None

        if kind not in cls._node_registry:
            raise ValueError(f"Unknown node kind '{kind.value}'")

        node_class = cls._node_registry[kind]
        if not isinstance(data, NodeData):
            data = node_class.data_class.from_dict(data)
        return node_class(id or uuid.uuid4().hex, position, data)

    def __init__(self, id: str, position: Optional[Position] = None, data: Optional[NodeData] = None):
        self.id = id
        self.position = Position(*position) if position is not None else Position()
        if data is None:
            data = self.data_class()
        if not isinstance(data, self.data_class):
            raise ValidationError(f"{type(self).__name__} expects {self.data_class.__name__}, got {type(data).__name__}")
        data.validate()
        self.data = data

        self.inputs: Dict[str, InputHandle] = {}
        self.outputs: Dict[str, OutputHandle] = {}

    def copy(self) -> 'Node':
        return type(self)(self.id, self.position, self.data)

    def with_data(self, **changes) -> NodeData:
        """Return this node's static data with *changes* applied, validated."""
        unknown = set(changes) - {f.name for f in fields(self.data)}
        if unknown:
            raise ValidationError(f"Unknown field(s) for {self.kind.value}: {', '.join(sorted(unknown))}")
        data = replace(self.data, **changes)
        data.validate()
        return data

    def __eq__(self, other):
        if not isinstance(other, Node):
            return NotImplemented
        return (type(self) is type(other)
                and self.id == other.id
                and self.position == other.position
                and self.data == other.data)

    __hash__ = None

    def __repr__(self):
        return f"{type(self).__name__}({self.id})"

    def isRunnable(self) -> bool:
        return False

    def isSourceNode(self) -> bool:
        return self.live_fields() is not None

    def live_fields(self) -> Optional[Dict[str, Any]]:
        """Output fields this node publishes straight from its static data, if any."""
        return None

    def output_fields(self) -> List[str]:
        return [handle.field for handle in self.outputs.values()]

    def prepare(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        """Validate gathered inputs and build the run request. Raises ValidationError."""
        for name, handle in self.inputs.items():
            value = inputs.get(name)
            if handle.required and (value is None or (isinstance(value, str) and not value.strip())):
                raise ValidationError(f"Missing required input '{name}' on {self.kind.value} node")
            if not Capability.validate(value, handle.capability):
                raise ValidationError(f"Input '{name}' expected {handle.capability.value}, got {type(value).__name__}")
        return self.build_payload(inputs)

    def build_payload(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        raise ValidationError(f"{self.kind.value} nodes cannot be run")

    async def compute(self, context: ExecutionContext) -> Dict[str, Any]:
        raise NotImplementedError


class JobNode(Node):
    """A node whose run is one job submitted through the job bridge."""

    def isRunnable(self) -> bool:
        return True

    async def compute(self, context: ExecutionContext) -> Dict[str, Any]:
        return await context.bridge.run(self.job_kind, context.payload, output_fields=self.output_fields())


# --- NODE KINDS ---

@Node.register(NodeKind.TEXT)
class TextNode(Node):
    data_class = TextData

    def __init__(self, id, position=None, data=None):
        super().__init__(id, position, data)
        self.outputs["text"] = OutputHandle(self.id, "text", Capability.TEXT, field="text")

    def live_fields(self) -> Optional[Dict[str, Any]]:
        return {"text": self.data.text}


@Node.register(NodeKind.PROMPT)
class PromptNode(Node):
    data_class = PromptData

    def __init__(self, id, position=None, data=None):
        super().__init__(id, position, data)
        self.outputs["prompt"] = OutputHandle(self.id, "prompt", Capability.TEXT, field="prompt")

    def live_fields(self) -> Optional[Dict[str, Any]]:
        return {"prompt": self.data.prompt}


@Node.register(NodeKind.IMAGE_UPLOAD)
class ImageUploadNode(Node):
    data_class = ImageUploadData
    upload_resource_type = "image"

    def __init__(self, id, position=None, data=None):
        super().__init__(id, position, data)
        self.outputs["image"] = OutputHandle(self.id, "image", Capability.IMAGE, field="imageUrl")

    def live_fields(self) -> Optional[Dict[str, Any]]:
        if not self.data.image_url:
            return {}
        return {"imageUrl": self.data.image_url}

    def uploaded(self, url: str, media_type: Optional[str] = None) -> Dict[str, Any]:
        return {"image_url": url}


@Node.register(NodeKind.VIDEO_UPLOAD)
class VideoUploadNode(Node):
    data_class = VideoUploadData
    upload_resource_type = "video"

    def __init__(self, id, position=None, data=None):
        super().__init__(id, position, data)
        self.outputs["video"] = OutputHandle(self.id, "video", Capability.VIDEO, field="mediaUrl")

    def live_fields(self) -> Optional[Dict[str, Any]]:
        if not self.data.media_url:
            return {}
        return {"mediaUrl": self.data.media_url, "mediaType": self.data.media_type}

    def uploaded(self, url: str, media_type: Optional[str] = None) -> Dict[str, Any]:
        return {"media_url": url, "media_type": media_type}


@Node.register(NodeKind.CROP_IMAGE)
class CropImageNode(Node):
    data_class = CropImageData
    requires_media = True

    def __init__(self, id, position=None, data=None):
        super().__init__(id, position, data)
        self.inputs["image"] = InputHandle(self.id, "image", Capability.IMAGE, required=True)
        self.outputs["image"] = OutputHandle(self.id, "image", Capability.IMAGE, field="imageUrl")

    def isRunnable(self) -> bool:
        return True

    def build_payload(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "imageUrl": inputs["image"],
            "x": self.data.x,
            "y": self.data.y,
            "width": self.data.width,
            "height": self.data.height,
        }

    async def compute(self, context: ExecutionContext) -> Dict[str, Any]:
        p = context.payload
        url = await context.media.crop(p["imageUrl"], p["x"], p["y"], p["width"], p["height"])
        return {"imageUrl": url}


@Node.register(NodeKind.EXTRACT_FRAME)
class ExtractFrameNode(JobNode):
    data_class = ExtractFrameData
    job_kind = "extract-video-frame"

    def __init__(self, id, position=None, data=None):
        super().__init__(id, position, data)
        self.inputs["video"] = InputHandle(self.id, "video", Capability.VIDEO, required=True)
        self.outputs["image"] = OutputHandle(self.id, "image", Capability.IMAGE, field="imageUrl")

    def build_payload(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        return {"videoUrl": inputs["video"], "timestamp": self.data.timestamp}


@Node.register(NodeKind.RUN_LLM)
class RunLLMNode(JobNode):
    data_class = RunLLMData
    job_kind = "run-llm-task"

    def __init__(self, id, position=None, data=None):
        super().__init__(id, position, data)
        self.inputs["system"] = InputHandle(self.id, "system", Capability.TEXT)
        self.inputs["prompt"] = InputHandle(self.id, "prompt", Capability.TEXT, required=True)
        self.inputs["image"] = InputHandle(self.id, "image", Capability.IMAGE)
        self.outputs["result"] = OutputHandle(self.id, "result", Capability.TEXT, field="result")

    def build_payload(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"prompt": inputs["prompt"]}
        if inputs.get("system"):
            payload["system"] = inputs["system"]
        if inputs.get("image"):
            payload["image"] = inputs["image"]
        return payload
