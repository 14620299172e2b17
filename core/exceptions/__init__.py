"""
Custom Exception Classes for Modgate

Provides a hierarchy of exceptions for the module registry and the gateway.
Each exception knows its HTTP status and how to render itself as the JSON
error body returned to clients.

Usage:
    from core.exceptions import (
        ModgateException,
        DescriptorParseError,
        DiscoveryUnavailable,
        ProxyTargetUnreachable,
        RouteNotFound,
    )
"""
from typing import Optional, Dict, Any


class ModgateException(Exception):
    """Base exception for all application errors"""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or "INTERNAL_ERROR"
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error,
            "code": self.error_code,
            "message": self.message,
            **self.details
        }


# ============================================================================
# Registry Exceptions
# ============================================================================

class DescriptorParseError(ModgateException):
    """Descriptor file is malformed or misses required fields"""

    error = "Descriptor Parse Error"

    def __init__(self, message: str, directory: str):
        super().__init__(message, "DESCRIPTOR_PARSE_ERROR", {"directory": directory})
        self.directory = directory


class DuplicateModuleName(ModgateException):
    """Two descriptors declare the same module name"""

    error = "Duplicate Module Name"

    def __init__(self, name: str, directory: str, kept_directory: str):
        super().__init__(
            f"Module name '{name}' already declared in {kept_directory}",
            "DUPLICATE_MODULE_NAME",
            {"module": name, "directory": directory, "keptDirectory": kept_directory}
        )
        self.name = name
        self.directory = directory


class RegistryRootMissing(ModgateException):
    """Descriptor root directory does not exist (startup misconfiguration)"""

    error = "Registry Root Missing"

    def __init__(self, root: str):
        super().__init__(
            f"Module directory {root} does not exist or is not a directory",
            "REGISTRY_ROOT_MISSING",
            {"root": root}
        )
        self.root = root


class DiscoveryError(ModgateException):
    """Scanning the descriptor store failed; the previous snapshot is kept"""

    status_code = 503
    error = "Discovery Error"

    def __init__(self, message: str):
        super().__init__(message, "DISCOVERY_ERROR")


class ModuleNotFound(ModgateException):
    """No module with the requested name in the current snapshot"""

    status_code = 404
    error = "Not Found"

    def __init__(self, name: str):
        super().__init__(f"Module {name} does not exist", "MODULE_NOT_FOUND", {"module": name})
        self.name = name


# ============================================================================
# Gateway Exceptions
# ============================================================================

class DiscoveryUnavailable(ModgateException):
    """The gateway cannot reach (or understand) the module market"""

    status_code = 503
    error = "Service Unavailable"

    def __init__(self, message: str, source: str):
        super().__init__(message, "DISCOVERY_UNAVAILABLE", {"source": source})
        self.source = source


class RouteTableBuildError(ModgateException):
    """Discovery payload cannot be turned into a route table"""

    def __init__(self, message: str):
        super().__init__(message, "ROUTE_TABLE_BUILD_ERROR")


class DuplicatePrefix(ModgateException):
    """Two modules declare the same route prefix"""

    error = "Duplicate Prefix"

    def __init__(self, prefix: str, module: str, kept_module: str):
        super().__init__(
            f"Prefix {prefix} of module '{module}' already routed to '{kept_module}'",
            "DUPLICATE_PREFIX",
            {"prefix": prefix, "module": module, "keptModule": kept_module}
        )
        self.prefix = prefix
        self.module = module


class RouteNotFound(ModgateException):
    """No route table entry matches the request path"""

    status_code = 404
    error = "Not Found"

    def __init__(self, path: str):
        super().__init__(f"Route {path} does not exist", "ROUTE_NOT_FOUND")
        self.path = path


class ProxyTargetUnreachable(ModgateException):
    """Backend of a module is down, refused the connection or timed out"""

    status_code = 502
    error = "Bad Gateway"

    def __init__(self, module: str, reason: str):
        super().__init__(
            f"Unable to reach service: {module}",
            "PROXY_TARGET_UNREACHABLE",
            {"module": module, "details": reason}
        )
        self.module = module
        self.reason = reason
