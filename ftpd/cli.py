import sys
import signal
import logging
import argparse

from ftpd.config import (PROGRAM, VERSION, DEFAULT_CONFIG_FILE, ConfigError,
                         build_config, load_config_file, sample_yaml)
from ftpd.logs import setup_logging
from ftpd.server_core import FTPServer

logger = logging.getLogger(__name__)


def setup_argparse(argv=None):
    parser = argparse.ArgumentParser(prog=PROGRAM, add_help=False,
                                     description="A simple anonymous FTP server")

    specific = parser.add_argument_group("Specific options")
    specific.add_argument("-h", "--host", help="The hostname or ip of the host to bind to (default 127.0.0.1)")
    specific.add_argument("-p", "--port", type=int, help="The port to listen on (default 21)")
    specific.add_argument("-c", "--clients", type=int,
                          help="The number of connections to allow at once (default 5)")
    specific.add_argument("-r", "--root", help="Starting directory for new sessions (default: current directory)")
    specific.add_argument("-t", "--timeout", type=float,
                          help="Seconds before a stalled control or data socket is dropped (default: never)")
    specific.add_argument("--config", dest="config_file", help="Load configuration from YAML file")
    specific.add_argument("--sample", action="store_true", help="See a sample YAML config file")
    specific.add_argument("-d", "--debug", action="store_true", default=None, help="Turn on debugging mode")

    common = parser.add_argument_group("Common options")
    common.add_argument("--help", action="help", help="Show this message")
    common.add_argument("-v", "--version", action="version", version=f"{PROGRAM} FTP server v{VERSION}")

    return parser.parse_args(argv)


def load_config(args):
    """Opciones de línea de comandos > fichero YAML > valores por defecto."""
    config_file = args.config_file or DEFAULT_CONFIG_FILE
    file_values = load_config_file(config_file, required=args.config_file is not None)
    options = {
        'host': args.host,
        'port': args.port,
        'clients': args.clients,
        'debug': args.debug,
        'root': args.root,
        'timeout': args.timeout,
    }
    return build_config(options, file_values)


def main(argv=None):
    args = setup_argparse(argv)
    if args.sample:
        sys.stdout.write(sample_yaml())
        return 0

    try:
        config = load_config(args)
    except ConfigError as e:
        setup_logging(False)
        logger.critical(f"[CONFIG] {e}")
        return 2

    setup_logging(config.debug)

    try:
        server = FTPServer(config)
    except OSError as e:
        logger.critical(f"[CORE] The port you have chosen is already in use or reserved. ({e})")
        return 1

    signal.signal(signal.SIGTERM, lambda signum, frame: server.shutdown())
    server.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
