"""Client and MCP server for the ViaggiaTreno railway-traffic service."""

from .config import ViaggiaTrenoSettings
from .models import Segment, Station, Train, TrainAutocompleteMatch, TrainInfo, TrainStopInfo
from .result import Failure, FailureKind, Ok, Result
from .viaggiatreno_client import (
    ParseError,
    TransportError,
    UpstreamStatusError,
    ViaggiaTrenoClient,
    ViaggiaTrenoError,
)

__all__ = [
    "Failure",
    "FailureKind",
    "Ok",
    "ParseError",
    "Result",
    "Segment",
    "Station",
    "Train",
    "TrainAutocompleteMatch",
    "TrainInfo",
    "TrainStopInfo",
    "TransportError",
    "UpstreamStatusError",
    "ViaggiaTrenoClient",
    "ViaggiaTrenoError",
    "ViaggiaTrenoSettings",
]
