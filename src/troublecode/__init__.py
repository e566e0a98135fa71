from .codec import decode_bundle, encode_bundle, decode_bundle_sync, encode_bundle_sync
from .collect import LogSink, LogSinkHandler, collect_info
from .compression import CompressionAdapter
from .errors import (
    DecodeError,
    DecompressionFailedError,
    MalformedInputError,
    NonSerializableError,
    ParseFailedError,
    PathSyntaxError,
    TroubleCodeError,
)
from .pathindex import PathIndex, TreeNode, build_path_index
from .render import Document, render_annotated_text

__all__ = [
    "encode_bundle",
    "decode_bundle",
    "encode_bundle_sync",
    "decode_bundle_sync",
    "CompressionAdapter",
    "build_path_index",
    "PathIndex",
    "TreeNode",
    "render_annotated_text",
    "Document",
    "LogSink",
    "LogSinkHandler",
    "collect_info",
    "TroubleCodeError",
    "DecodeError",
    "MalformedInputError",
    "ParseFailedError",
    "DecompressionFailedError",
    "NonSerializableError",
    "PathSyntaxError",
]
