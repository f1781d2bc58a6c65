"""Shared contracts: data types, protocols, enums and errors.

Leaf module: nothing here imports from core, engine or plugins.
"""

from ingestline.contracts.enums import (
    ExtractionCounter,
    IdentityMode,
    InputOutcome,
    TaskState,
    TransactionState,
)
from ingestline.contracts.errors import (
    ChainBuildError,
    CommitError,
    ConditionEvaluationError,
    ConfigurationError,
    DateParseError,
    ExtractionError,
    IngestlineError,
    LivenessStateError,
    MissingIdentityError,
    NoRuleMatchedError,
    OutputChannelError,
    ProcessingErrorInfo,
    RecordProcessingError,
    ScriptEvaluationError,
    ScriptSecurityError,
    ScriptSyntaxError,
    ServiceError,
    TaskSetupError,
    TaskStateError,
    TransactionStateError,
)
from ingestline.contracts.extractor import Extractor
from ingestline.contracts.framework import Counter, FileSystem, OutputChannel, TaskContext
from ingestline.contracts.loader import DocumentLoader, PingStatus
from ingestline.contracts.record import (
    ATTACHMENT_BODY,
    ATTACHMENT_CHARSET,
    ATTACHMENT_MIME_TYPE,
    ATTACHMENT_NAME,
    ATTACHMENT_PREFIX,
    FILE_URI_FIELD,
    Document,
    Record,
)

__all__ = [
    "ATTACHMENT_BODY",
    "ATTACHMENT_CHARSET",
    "ATTACHMENT_MIME_TYPE",
    "ATTACHMENT_NAME",
    "ATTACHMENT_PREFIX",
    "FILE_URI_FIELD",
    "ChainBuildError",
    "CommitError",
    "ConditionEvaluationError",
    "ConfigurationError",
    "Counter",
    "DateParseError",
    "Document",
    "DocumentLoader",
    "ExtractionCounter",
    "ExtractionError",
    "Extractor",
    "FileSystem",
    "IdentityMode",
    "IngestlineError",
    "InputOutcome",
    "LivenessStateError",
    "MissingIdentityError",
    "NoRuleMatchedError",
    "OutputChannel",
    "OutputChannelError",
    "PingStatus",
    "ProcessingErrorInfo",
    "Record",
    "RecordProcessingError",
    "ScriptEvaluationError",
    "ScriptSecurityError",
    "ScriptSyntaxError",
    "ServiceError",
    "TaskContext",
    "TaskSetupError",
    "TaskState",
    "TaskStateError",
    "TransactionState",
    "TransactionStateError",
]
