from .chain import iter_ancestors, reaches
from .exceptions import (
    AuthenticationError,
    EmptyPolicySetError,
    MissingPolicyIdError,
    PolicyDocumentError,
    PolicyKitError,
    PolicyParseError,
    PolicyUploadError,
    SettingsFileError,
)
from .graph import PolicyGraph, build_policy_graph, load_policy_graph
from .models import PolicyDocument, PolicyFile, RenumberResult, SequenceGroup, VisitState
from .ordering import UploadEntry, UploadQueue, resolve_upload_order
from .parser import parse_policy
from .renumber import StepRenumberer, renumber_all

__all__ = [
    "AuthenticationError",
    "EmptyPolicySetError",
    "MissingPolicyIdError",
    "PolicyDocument",
    "PolicyDocumentError",
    "PolicyFile",
    "PolicyGraph",
    "PolicyKitError",
    "PolicyParseError",
    "PolicyUploadError",
    "RenumberResult",
    "SequenceGroup",
    "SettingsFileError",
    "StepRenumberer",
    "UploadEntry",
    "UploadQueue",
    "VisitState",
    "build_policy_graph",
    "iter_ancestors",
    "load_policy_graph",
    "parse_policy",
    "reaches",
    "renumber_all",
    "resolve_upload_order",
]
