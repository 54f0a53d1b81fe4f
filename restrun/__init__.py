"""restrun: HTTP request script runner with response validation."""

from .assembler import RequestAssembler
from .cli import main
from .config import ClientConfig, find_config, load_config, validate_config_file
from .display import ICONS, Display, get_display
from .environment import Environment, list_environments, load_environment
from .errors import (
    ConfigError,
    ExecutionError,
    ExternalBodyError,
    MismatchError,
    MultiError,
    NoRequestsError,
    PatternCompileError,
    RequestCancelledError,
    RequestError,
    RestRunError,
    ScriptParseError,
    TransportError,
    ValidationError,
    VariableCycleError,
    VariableDefinitionError,
)
from .models import (
    ExecutionResult,
    ExpectedDocument,
    ExpectedResponse,
    ParsedFile,
    PreparedRequest,
    Request,
    Response,
)
from .parser import (
    parse_expected_file,
    parse_expected_responses,
    parse_request_file,
    parse_requests,
)
from .runner import ScriptRunner
from .selector import format_environment_list, select_environment_interactive
from .transport import HttpxTransport
from .variables import ProviderRegistry, RequestScopeContext, ScopeChain

__all__ = [
    # CLI
    "main",
    # Config
    "ClientConfig",
    "find_config",
    "load_config",
    "validate_config_file",
    # Display
    "ICONS",
    "Display",
    "get_display",
    # Environment
    "Environment",
    "list_environments",
    "load_environment",
    # Errors
    "ConfigError",
    "ExecutionError",
    "ExternalBodyError",
    "MismatchError",
    "MultiError",
    "NoRequestsError",
    "PatternCompileError",
    "RequestCancelledError",
    "RequestError",
    "RestRunError",
    "ScriptParseError",
    "TransportError",
    "ValidationError",
    "VariableCycleError",
    "VariableDefinitionError",
    # Models
    "ExecutionResult",
    "ExpectedDocument",
    "ExpectedResponse",
    "ParsedFile",
    "PreparedRequest",
    "Request",
    "Response",
    # Parser
    "parse_expected_file",
    "parse_expected_responses",
    "parse_request_file",
    "parse_requests",
    # Runner
    "RequestAssembler",
    "ScriptRunner",
    "HttpxTransport",
    # Selector
    "format_environment_list",
    "select_environment_interactive",
    # Variables
    "ProviderRegistry",
    "RequestScopeContext",
    "ScopeChain",
]
