"""Application bootstrap and shared object wiring for the relay and CLI runtimes."""

from loguru import logger

from synthrelay.api.auth.session_manager import SessionManager
from synthrelay.api.config.config_handler import ConfigHandler
from synthrelay.api.controller.controller_lock import ControllerLock
from synthrelay.api.ice.ice_servers_provider import IceServersProvider
from synthrelay.api.logger.msgs import errors
from synthrelay.api.models.config_model import Config
from synthrelay.api.queue.message_queue import MessageQueue
from synthrelay.api.signaling.connection_registry import ConnectionRegistry
from synthrelay.api.signaling.signaling_relay import SignalingRelay
from synthrelay.api.store import QueueStore, create_queue_store


class RelayInitializer:
    """
    Lazily initializes and shares the relay managers used across the application.

    Exposed as a singleton (`relay_initializer`) so routes share one runtime
    container per process.
    """

    config: Config = None
    config_handler: ConfigHandler = None
    queue_store: QueueStore = None
    session_manager: SessionManager = None
    message_queue: MessageQueue = None
    controller_lock: ControllerLock = None
    connection_registry: ConnectionRegistry = None
    signaling_relay: SignalingRelay = None
    ice_servers_provider: IceServersProvider = None

    is_loaded: bool = False

    def load_objects(self, config: Config | None = None, queue_store: QueueStore | None = None) -> None:
        """
        Build every manager.

        Args:
            config (Config, optional): Use this config instead of loading one.
            queue_store (QueueStore, optional): Use this store instead of the configured backend.
        """
        if config is None:
            self.load_config()
        else:
            self.config = config

        self.queue_store = queue_store or create_queue_store(self.config)
        self.session_manager = SessionManager(
            queue_store=self.queue_store,
            ttl_seconds=self.config.SESSION_TTL_SECONDS,
        )
        self.message_queue = MessageQueue(
            queue_store=self.queue_store,
            ttl_seconds=self.config.MESSAGE_TTL_SECONDS,
        )
        self.controller_lock = ControllerLock(queue_store=self.queue_store)
        self.connection_registry = ConnectionRegistry()
        self.signaling_relay = SignalingRelay(
            connection_registry=self.connection_registry,
            controller_lock=self.controller_lock,
            message_queue=self.message_queue,
            controller_id_prefix=self.config.CONTROLLER_ID_PREFIX,
        )
        self.ice_servers_provider = IceServersProvider(
            account_sid=self.config.TWILIO_ACCOUNT_SID,
            auth_token=self.config.TWILIO_AUTH_TOKEN,
            ttl_seconds=self.config.ICE_TTL_SECONDS,
        )

        self.is_loaded = True

    def load_config(self) -> None:
        """Load configuration from config.toml and the environment."""
        self.config_handler = ConfigHandler()

        if not self.config_handler.check_config():
            logger.debug(errors.ERROR_NO_CONFIG_FILE_FOUND(str(self.config_handler.config_toml_path)))

        self.config = self.config_handler.build_config()


relay_initializer: RelayInitializer = RelayInitializer()
