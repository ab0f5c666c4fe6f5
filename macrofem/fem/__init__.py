"""Finite element core of macrofem.

Holds the package logger shared by every ``macrofem.fem`` module and switches
JAX to double precision, which the macro-element maps and the node stitching
tolerances rely on.
"""
import logging

from jax import config

config.update("jax_enable_x64", True)


def setup_logger(name, level=logging.INFO):
    """Create the package logger with a single console handler.

    Args:
        name (str): Logger name.
        level (int, optional): Logging level. Defaults to logging.INFO.

    Returns:
        logging.Logger: The configured logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers on module reload
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s][%(levelname)s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        logger.addHandler(handler)
    logger.propagate = False
    return logger


logger = setup_logger("macrofem")
