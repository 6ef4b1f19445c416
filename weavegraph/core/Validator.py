"""
Connection validation.

A proposed edge is legal when the source handle is a declared output, the
target handle is a declared input, the two handles sit on different nodes and
their capabilities form a whitelisted pair. There is no implicit coercion, so
an image output never feeds a text input and vice versa.
"""
from typing import FrozenSet, Optional, Tuple

import logging

from .Node import Node
from .Types import Capability

logger = logging.getLogger(__name__)

CONNECTION_WHITELIST: FrozenSet[Tuple[Capability, Capability]] = frozenset({
    (Capability.TEXT, Capability.TEXT),
    (Capability.IMAGE, Capability.IMAGE),
    (Capability.VIDEO, Capability.VIDEO),
})


def is_valid_connection(source_node: Optional[Node],
                        source_handle: Optional[str],
                        target_node: Optional[Node],
                        target_handle: Optional[str],
                        fail_open: bool = False) -> bool:
    """
    Decide whether ``source_node.source_handle -> target_node.target_handle`` is legal.

    Handles that neither node declares are rejected unless *fail_open* is set,
    in which case only known-bad capability pairs are rejected.
    """
    if source_node is None or target_node is None:
        return False

    if source_node.id == target_node.id:
        logger.debug(f"Rejecting self connection on node '{source_node.id}'")
        return False

    from_handle = source_node.outputs.get(source_handle) if source_handle else None
    to_handle = target_node.inputs.get(target_handle) if target_handle else None

    if from_handle is None or to_handle is None:
        if fail_open:
            return True
        logger.debug(
            f"Rejecting connection with undeclared handle: "
            f"{source_node.kind.value}.{source_handle} -> {target_node.kind.value}.{target_handle}"
        )
        return False

    allowed = (from_handle.capability, to_handle.capability) in CONNECTION_WHITELIST
    if not allowed:
        logger.debug(
            f"Capability mismatch: {from_handle.capability.value} output "
            f"'{source_handle}' cannot feed {to_handle.capability.value} input '{target_handle}'"
        )
    return allowed
