import logging

import colorama

from .utils import color_text


class CustomFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: colorama.Style.DIM,
        logging.INFO: colorama.Fore.GREEN,
        logging.WARNING: colorama.Fore.YELLOW,
        logging.ERROR: colorama.Fore.RED,
        logging.CRITICAL: colorama.Fore.RED + colorama.Style.BRIGHT,
    }

    def __init__(self) -> None:
        super().__init__(
            fmt="[%(levelname)-8s %(asctime)s] %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return message
        return color_text(message, color)
