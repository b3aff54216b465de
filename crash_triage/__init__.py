"""Crash report triage for the bug tracker bot.

This package finds crash dumps in bug reports and acts on them:
- Bounded reading of untrusted attachments
- Crash report / JVM fatal error classification
- Duplicate detection against configured crash signatures
- Modded client detection with a unanimity rule
- Upload of deobfuscated traces through a path-traversal-safe sandbox
- Requests for a crash report when one is mentioned but missing
"""
from .actions import ResultStatus, TriageActionExecutor, TriageResult
from .bounded_reader import BoundedReader, LimitExceededError, read_text
from .classifier import CrashClassifierAdapter
from .collector import CrashSourceCollector
from .config import ConfigError, TriageConfig, load_config, load_config_from_env
from .core import CrashTriage
from .crash_parser import CrashParser, CrashReportParser
from .decisions import (
    NoAction,
    RequestMoreInfo,
    ResolveDuplicate,
    ResolveInvalidModded,
    TriageDecision,
)
from .deobfuscation import DeobfuscationArtifactWriter, DeobfuscationRequestError
from .engine import TriageGuards, decide
from .mapping_download import MappingDownloader, MappingDownloadError
from .mappings import MappingDeobfuscator, ProguardMappings
from .models import (
    Attachment,
    BugReport,
    ClassifiedCrash,
    CrashCategory,
    CrashSignatureRule,
    CrashSource,
    IssueLink,
    ModdedConfidence,
    ParsedCrash,
    ReportActions,
    SourceOrigin,
)
from .safe_path import resolve_safe_child

__all__ = [
    # Entry points
    "CrashTriage",
    "TriageConfig",
    "ConfigError",
    "load_config",
    "load_config_from_env",
    # Pipeline
    "BoundedReader",
    "LimitExceededError",
    "read_text",
    "resolve_safe_child",
    "CrashSourceCollector",
    "CrashParser",
    "CrashReportParser",
    "CrashClassifierAdapter",
    "TriageGuards",
    "decide",
    "TriageActionExecutor",
    "DeobfuscationArtifactWriter",
    "DeobfuscationRequestError",
    "MappingDeobfuscator",
    "ProguardMappings",
    "MappingDownloader",
    "MappingDownloadError",
    # Decisions and results
    "TriageDecision",
    "NoAction",
    "ResolveDuplicate",
    "ResolveInvalidModded",
    "RequestMoreInfo",
    "TriageResult",
    "ResultStatus",
    # Data model
    "Attachment",
    "BugReport",
    "ClassifiedCrash",
    "CrashCategory",
    "CrashSignatureRule",
    "CrashSource",
    "IssueLink",
    "ModdedConfidence",
    "ParsedCrash",
    "ReportActions",
    "SourceOrigin",
]

__version__ = "1.0.0"
