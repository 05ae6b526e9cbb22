import asyncio
import sys
from config.dm import DeviceManagementConfig
from server.demo import build_demo_handlers
from server.dm_server import DeviceManagementServer
from utils.platform import ShutdownSignalHandler, check_python_version
from utils import get_logger, log_error_with_context, setup_logging, silence_module


dm_config = DeviceManagementConfig.from_env()
setup_logging(level=dm_config.log_level, colored=True)
silence_module('paho')
silence_module('asyncio')

logger = get_logger(__name__)


async def main():
    """Run the demo device management instance"""
    server = None

    try:
        server = DeviceManagementServer(build_demo_handlers(), dm_config=dm_config)

        signal_handler = ShutdownSignalHandler(server.stop)
        signal_handler.setup_signals()

        await server.start()

    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")
    except Exception as e:
        log_error_with_context(logger, e, "critical_server_error")
        sys.exit(1)
    finally:
        if server and server.is_running():
            try:
                await server.stop()
            except Exception as e:
                log_error_with_context(logger, e, "cleanup")


if __name__ == "__main__":
    try:
        if not check_python_version((3, 10)):
            sys.exit(1)

        asyncio.run(main())

    except KeyboardInterrupt:
        logger.info("application_interrupted")
    except Exception as e:
        logger.critical("startup_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)
