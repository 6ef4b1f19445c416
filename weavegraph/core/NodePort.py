from typing import Optional

import logging

from .Types import Capability, HandleDirection

logger = logging.getLogger(__name__)


class NodeHandle:
    """A named, capability-typed port on a node."""

    def __init__(self,
                 node_id: str,
                 handle_name: str,
                 direction: HandleDirection,
                 capability: Capability):
        self.node_id = node_id
        self.handle_name = handle_name
        self.direction = direction
        self.capability = capability

    def isInputHandle(self) -> bool:
        return self.direction == HandleDirection.INPUT

    def isOutputHandle(self) -> bool:
        return self.direction == HandleDirection.OUTPUT

    def __repr__(self):
        return f"{type(self).__name__}({self.node_id}.{self.handle_name}: {self.capability.value})"


class InputHandle(NodeHandle):
    def __init__(self, node_id: str, handle_name: str, capability: Capability, required: bool = False):
        super().__init__(node_id, handle_name, HandleDirection.INPUT, capability)
        self.required = required


class OutputHandle(NodeHandle):
    def __init__(self, node_id: str, handle_name: str, capability: Capability, field: Optional[str] = None):
        super().__init__(node_id, handle_name, HandleDirection.OUTPUT, capability)
        # Live data field this handle publishes, e.g. ``imageUrl`` for an image output
        self.field = field or handle_name
