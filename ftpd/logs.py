import sys
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(debug=False):
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout)
    logging.getLogger("ftpd").setLevel(level)
    return logging.getLogger("ftpd")


def notice(msg):
    # Siempre visible, independiente del nivel de logging
    print(f"=> {msg}", flush=True)
