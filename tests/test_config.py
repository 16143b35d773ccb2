import pytest
from pydantic import ValidationError

from mcp_session.client import McpClient
from mcp_session.client.transports import HttpPostTransport, StdioTransport, StreamableHTTPTransport
from mcp_session.config import ClientSettings, ServerSettings


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    # Keep a developer's .env out of the tests
    monkeypatch.chdir(tmp_path)


def test_client_defaults():
    settings = ClientSettings()
    assert settings.server_url == "http://localhost:4000/mcp"
    assert settings.transport == "streamable-http"
    assert settings.request_timeout == 30.0
    assert settings.token is None


def test_client_settings_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MCP_CLIENT_SERVER_URL", "http://databricks.local/mcp")
    monkeypatch.setenv("MCP_CLIENT_REQUEST_TIMEOUT", "2.5")
    monkeypatch.setenv("MCP_CLIENT_TRANSPORT", "http")
    monkeypatch.setenv("MCP_CLIENT_STDIO_ARGS", '["-m", "server"]')

    settings = ClientSettings()
    assert settings.server_url == "http://databricks.local/mcp"
    assert settings.request_timeout == 2.5
    assert settings.transport == "http"
    assert settings.stdio_args == ["-m", "server"]


def test_client_settings_from_dotenv(tmp_path):
    (tmp_path / ".env").write_text("MCP_CLIENT_TOKEN=from-file\nUNRELATED=1\n")
    assert ClientSettings().token == "from-file"


def test_invalid_timeout_rejected(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MCP_CLIENT_REQUEST_TIMEOUT", "0")
    with pytest.raises(ValidationError):
        ClientSettings()


def test_server_settings_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MCP_SERVER_PORT", "4100")
    monkeypatch.setenv("MCP_SERVER_JSON_RESPONSE", "true")
    settings = ServerSettings()
    assert settings.port == 4100
    assert settings.json_response is True
    assert settings.host == "127.0.0.1"


def test_from_settings_streamable_http_with_token():
    settings = ClientSettings(token="secret", request_timeout=3, connect_timeout=4)
    client = McpClient.from_settings(settings)
    transport = client.transport
    assert isinstance(transport, StreamableHTTPTransport)
    assert transport.headers == {"Authorization": "Bearer secret"}
    assert transport.timeout == 3
    assert transport.connect_timeout == 4
    assert client.request_timeout == 3


def test_from_settings_plain_http():
    client = McpClient.from_settings(ClientSettings(transport="http"))
    assert type(client.transport) is HttpPostTransport
    assert client.transport.headers == {}


def test_from_settings_stdio():
    client = McpClient.from_settings(ClientSettings(transport="stdio", stdio_command="server", stdio_args=["--x"]))
    assert isinstance(client.transport, StdioTransport)
    assert client.transport.server.args == ["--x"]

    with pytest.raises(ValueError, match="stdio_command"):
        McpClient.from_settings(ClientSettings(transport="stdio"))


def test_from_settings_overrides():
    client = McpClient.from_settings(ClientSettings(), request_timeout=1.0, validate_arguments=False)
    assert client.request_timeout == 1.0
