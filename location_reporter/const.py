"""Constants for the location reporter."""

from datetime import timedelta

SAMPLE_INTERVAL = timedelta(seconds=20)

HANDSHAKE_TIMEOUT = 5
REPLY_TIMEOUT = 3
SEND_TIMEOUT = 10

HISTORY_SIZE = 20

CONF_DEVICE_NAME = "device_name"
CONF_WEBSOCKET_URL = "websocket_url"
CONF_HTTP_URL = "http_url"
CONF_TRANSPORT = "transport"

ENV_PREFIX = "LOCATION_REPORTER_"

DEFAULT_DEVICE_NAME = "device"
DEFAULT_WEBSOCKET_URL = "ws://localhost:8080/ws"
DEFAULT_HTTP_URL = "http://localhost:8080/api/location"

# Brasília, used whenever a real fix is unavailable.
FALLBACK_LATITUDE = -15.7801
FALLBACK_LONGITUDE = -47.9292

MESSAGE_TYPE_LOCATION = "localizacao"
MESSAGE_TYPE_CONNECTION_TEST = "teste_conexao"
ACK_STATUS_SUCCESS = "sucesso"

REQUEST_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

STATUS_DISCONNECTED = "Disconnected"
