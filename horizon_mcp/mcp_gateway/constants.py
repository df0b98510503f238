"""Constants and limits for the Open Horizon MCP gateway."""

SERVER_NAME = "open-horizon-mcp-server"
SERVER_VERSION = "1.0.0"

MCP_PATH = "/mcp"
HEALTH_PATH = "/health"
SESSION_HEADER = "mcp-session-id"

MAX_STREAM_EVENTS = 200  # queued server-to-client events per session

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
NO_VALID_SESSION = -32000
SESSION_NOT_FOUND = -32001
