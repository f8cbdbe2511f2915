from loglens.services.loki.analysis import LogAnalysisResult, LogAnalysisService
from loglens.services.loki.client import LokiClient, LokiClientError
from loglens.services.loki.log_source import LokiLogSource
from loglens.services.loki.sample_data import SampleLogGenerator

__all__ = [
    "LogAnalysisResult",
    "LogAnalysisService",
    "LokiClient",
    "LokiClientError",
    "LokiLogSource",
    "SampleLogGenerator",
]
