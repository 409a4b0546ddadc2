"""Constants and value types (edge keys, face keys, content hashes)."""

from .constants import *  # noqa: F401,F403
from .structures import (
    EdgeKey,
    FaceKey,
    edge_key,
    face_key,
    pack_edge_key,
    unpack_edge_key,
    keys_to_array,
    array_to_keys,
    fnv1a_32,
    edge_key_hash,
)
