from synthrelay.core import constants


class Config:
    """ config model class """
    # Server related parameters
    API_HOST                        :   str     =   "127.0.0.1"
    API_PORT                        :   int     =   7676
    WORKERS                         :   int     =   1
    LOGS_PATH                       :   str     =   f"{constants.HOME}/.synthrelay/logs/synthrelay.log"
    DEV_MODE                        :   bool    =   False
    ALLOWED_ORIGINS                 :   list    =   ["http://localhost:7676", "http://127.0.0.1:7676"]

    # Queue Store
    STORE_PROVIDER                  :   str     =   "memory"
    REDIS_URL                       :   str     =   "redis://localhost:6379/0"
    MESSAGE_TTL_SECONDS             :   int     =   300

    # Controller lock
    CONTROLLER_ID_PREFIX            :   str     =   "controller-"
    KICK_HOLD_SECONDS               :   float   =   5.0

    # Sessions
    SESSION_TTL_SECONDS             :   int     =   60 * 60 * 24 * 7

    # ICE servers
    TWILIO_ACCOUNT_SID              :   str     =   ""
    TWILIO_AUTH_TOKEN               :   str     =   ""
    ICE_TTL_SECONDS                 :   int     =   3600

    # Peer side timers
    PING_INTERVAL_MS                :   int     =   2000
    PONG_TIMEOUT_MS                 :   int     =   2000
    CONNECTION_TIMEOUT_MS           :   int     =   5000
    VERIFICATION_TICK_MS            :   int     =   1000
    HEARTBEAT_SECONDS               :   float   =   30.0
    RECONNECT_BACKOFF_SECONDS       :   float   =   2.0
    RECONNECT_CHECK_SECONDS         :   float   =   10.0
    CONTROLLER_REFRESH_SECONDS      :   float   =   30.0
    HANDSHAKE_TIMEOUT_SECONDS       :   float   =   15.0

    def __init__(self, config: dict | None = None) -> None:
        if config is not None:
            self.set_attr_from_config(config)

    def set_attr_from_config(self, config: dict) -> None:
        """
        Sets the attributes values from the config file, keeping the
        defaults for any missing section or key.

        Args:
            config (dict): The config file data.

        Returns:
            None.
        """
        server = config.get("server", {})
        self.API_HOST                   =   server.get("api_host", self.API_HOST)
        self.API_PORT                   =   int(server.get("api_port", self.API_PORT))
        self.WORKERS                    =   int(server.get("workers", self.WORKERS))
        self.LOGS_PATH                  =   server.get("logs_path", self.LOGS_PATH)
        self.DEV_MODE                   =   bool(server.get("dev_mode", self.DEV_MODE))
        self.ALLOWED_ORIGINS            =   list(server.get("allowed_origins", self.ALLOWED_ORIGINS))

        store = config.get("store", {})
        self.STORE_PROVIDER             =   store.get("provider", self.STORE_PROVIDER)
        self.REDIS_URL                  =   store.get("redis_url", self.REDIS_URL)
        self.MESSAGE_TTL_SECONDS        =   int(store.get("message_ttl_seconds", self.MESSAGE_TTL_SECONDS))

        controller = config.get("controller", {})
        self.CONTROLLER_ID_PREFIX       =   controller.get("id_prefix", self.CONTROLLER_ID_PREFIX)
        self.KICK_HOLD_SECONDS          =   float(controller.get("kick_hold_seconds", self.KICK_HOLD_SECONDS))

        sessions = config.get("sessions", {})
        self.SESSION_TTL_SECONDS        =   int(sessions.get("ttl_seconds", self.SESSION_TTL_SECONDS))

        ice = config.get("ice", {})
        self.TWILIO_ACCOUNT_SID         =   ice.get("twilio_account_sid", self.TWILIO_ACCOUNT_SID)
        self.TWILIO_AUTH_TOKEN          =   ice.get("twilio_auth_token", self.TWILIO_AUTH_TOKEN)
        self.ICE_TTL_SECONDS            =   int(ice.get("ttl_seconds", self.ICE_TTL_SECONDS))

        peer = config.get("peer", {})
        self.PING_INTERVAL_MS           =   int(peer.get("ping_interval_ms", self.PING_INTERVAL_MS))
        self.PONG_TIMEOUT_MS            =   int(peer.get("pong_timeout_ms", self.PONG_TIMEOUT_MS))
        self.CONNECTION_TIMEOUT_MS      =   int(peer.get("connection_timeout_ms", self.CONNECTION_TIMEOUT_MS))
        self.VERIFICATION_TICK_MS       =   int(peer.get("verification_tick_ms", self.VERIFICATION_TICK_MS))
        self.HEARTBEAT_SECONDS          =   float(peer.get("heartbeat_seconds", self.HEARTBEAT_SECONDS))
        self.RECONNECT_BACKOFF_SECONDS  =   float(peer.get("reconnect_backoff_seconds", self.RECONNECT_BACKOFF_SECONDS))
        self.RECONNECT_CHECK_SECONDS    =   float(peer.get("reconnect_check_seconds", self.RECONNECT_CHECK_SECONDS))
        self.CONTROLLER_REFRESH_SECONDS =   float(peer.get("controller_refresh_seconds", self.CONTROLLER_REFRESH_SECONDS))
        self.HANDSHAKE_TIMEOUT_SECONDS  =   float(peer.get("handshake_timeout_seconds", self.HANDSHAKE_TIMEOUT_SECONDS))

    def validate(self) -> None:
        """
        Check the cross-field constraints of the config.

        Raises:
            ValueError: If the timers or the store provider are inconsistent.
        """
        if self.CONNECTION_TIMEOUT_MS <= self.PING_INTERVAL_MS:
            raise ValueError(
                f"connection_timeout_ms ({self.CONNECTION_TIMEOUT_MS}) must be greater than ping_interval_ms ({self.PING_INTERVAL_MS})"
            )
        if self.STORE_PROVIDER not in ("memory", "redis"):
            raise ValueError(f"Unknown store provider '{self.STORE_PROVIDER}', expected 'memory' or 'redis'")
        if self.MESSAGE_TTL_SECONDS <= 0:
            raise ValueError("message_ttl_seconds must be positive")
        if self.HANDSHAKE_TIMEOUT_SECONDS <= 0:
            raise ValueError("handshake_timeout_seconds must be positive")

    def export_toml(self) -> str:
        """
        Exports the attributes into a toml format.

        Returns:
            str: The attributes in the toml format.
        """
        config = f"""# This is the config file for synthrelay
# restart the relay after editing it to apply the changes

[server]
api_host = "{self.API_HOST}"
api_port = {self.API_PORT}
workers = {self.WORKERS} # keep at 1 with the memory store, use redis for more
logs_path = "{self.LOGS_PATH}"
dev_mode = {str(self.DEV_MODE).lower()}
allowed_origins = [{", ".join(f'"{origin}"' for origin in self.ALLOWED_ORIGINS)}] # CORS origins allowed to call the api with cookies

[store]
provider = "{self.STORE_PROVIDER}" # memory or redis
redis_url = "{self.REDIS_URL}"
message_ttl_seconds = {self.MESSAGE_TTL_SECONDS} # queued handshake messages expire after this

[controller]
id_prefix = "{self.CONTROLLER_ID_PREFIX}"
kick_hold_seconds = {self.KICK_HOLD_SECONDS}

[sessions]
ttl_seconds = {self.SESSION_TTL_SECONDS}

[ice]
twilio_account_sid = "{self.TWILIO_ACCOUNT_SID}"
twilio_auth_token = "{self.TWILIO_AUTH_TOKEN}"
ttl_seconds = {self.ICE_TTL_SECONDS}

[peer]
ping_interval_ms = {self.PING_INTERVAL_MS}
pong_timeout_ms = {self.PONG_TIMEOUT_MS}
connection_timeout_ms = {self.CONNECTION_TIMEOUT_MS} # must be greater than ping_interval_ms
verification_tick_ms = {self.VERIFICATION_TICK_MS}
heartbeat_seconds = {self.HEARTBEAT_SECONDS}
reconnect_backoff_seconds = {self.RECONNECT_BACKOFF_SECONDS}
reconnect_check_seconds = {self.RECONNECT_CHECK_SECONDS}
controller_refresh_seconds = {self.CONTROLLER_REFRESH_SECONDS}
handshake_timeout_seconds = {self.HANDSHAKE_TIMEOUT_SECONDS} # a synth handshake without an open channel after this is retried
"""
        return config

    def __repr__(self) -> str:
        return f"Config(API_HOST={self.API_HOST!r}, API_PORT={self.API_PORT!r}, WORKERS={self.WORKERS!r}, STORE_PROVIDER={self.STORE_PROVIDER!r}, MESSAGE_TTL_SECONDS={self.MESSAGE_TTL_SECONDS!r}, DEV_MODE={self.DEV_MODE!r})"
