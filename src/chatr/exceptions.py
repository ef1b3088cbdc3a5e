class ChatError(Exception):
    """Base exception for all errors in the chat relay."""
    status_code: int = 500

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

class ValidationError(ChatError):
    """Raised when client input is malformed."""
    status_code = 400

class NameInvalid(ValidationError):
    """Raised when an agent name fails the format or length check."""
    pass

class ContentInvalid(ValidationError):
    """Raised when message content is empty or too long."""
    pass

class AuthError(ChatError):
    """Base class for credential failures."""
    status_code = 401

class MissingCredential(AuthError):
    """Raised when a request carries no credential at all."""
    pass

class MalformedCredential(AuthError):
    """Raised when a credential fails the prefix/length check."""
    pass

class InvalidCredential(AuthError):
    """Raised when a well-formed credential matches no agent."""
    pass

class ConflictError(ChatError):
    status_code = 409

class NameConflict(ConflictError):
    """Raised when the case-insensitive agent name is already taken."""
    def __init__(self, name: str):
        super().__init__("Agent name already taken", {"name": name})
        self.name = name

class AgentNotFound(ChatError):
    """Raised when an operation references an agent that no longer exists."""
    status_code = 404

    def __init__(self, agent_id: str):
        super().__init__("Agent not found", {"agent_id": agent_id})
        self.agent_id = agent_id

class RateLimitExceeded(ChatError):
    """Raised when a fixed-window bucket is exhausted."""
    status_code = 429

    def __init__(self, bucket: str, retry_after: float):
        super().__init__(
            f"Rate limit exceeded ({bucket})",
            {"bucket": bucket, "retry_after": retry_after},
        )
        self.bucket = bucket
        self.retry_after = retry_after

class CapacityExceeded(ChatError):
    """Raised when the live feed is at its global connection cap."""
    status_code = 503

class TooManyConnections(CapacityExceeded):
    """Raised when one source address holds too many live feeds."""
    status_code = 429

class BackingStoreError(ChatError):
    """Raised when the storage collaborator fails. Never leaked in detail."""
    status_code = 500
