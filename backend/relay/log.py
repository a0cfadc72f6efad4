import logging, sys


def setup_logging(level_name: str = "INFO"):
    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)
    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    root = logging.getLogger()
    if getattr(setup_logging, "_configured", False):
        root.setLevel(level)
        return
    h = logging.StreamHandler(sys.stdout)
    h.setFormatter(logging.Formatter(fmt, datefmt="%Y/%m/%d %H:%M:%S"))
    root.handlers[:] = [h]
    root.setLevel(level)
    setup_logging._configured = True
