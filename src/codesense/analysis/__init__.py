"""Analysis layer - bridge to an external language-analysis server.

- JsonRpcConnection: Content-Length framed JSON-RPC over a subprocess
- AnalysisBridge: revision-tagged request state machine per document
- CoordinateConverter: buffer offsets <-> protocol positions
"""

from codesense.analysis.bridge import (
    AnalysisBridge,
    PendingRequest,
    RequestKind,
    RequestState,
    ServerSymbol,
    hover_text,
)
from codesense.analysis.connection import AnalysisConnection, JsonRpcConnection
from codesense.analysis.coordinates import (
    CoordinateConverter,
    PositionEncoding,
    negotiate_encoding,
    supported_encodings,
)

__all__ = [
    "AnalysisBridge",
    "AnalysisConnection",
    "CoordinateConverter",
    "JsonRpcConnection",
    "PendingRequest",
    "PositionEncoding",
    "RequestKind",
    "RequestState",
    "ServerSymbol",
    "hover_text",
    "negotiate_encoding",
    "supported_encodings",
]
