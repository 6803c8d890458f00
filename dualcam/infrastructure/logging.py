import logging
from pathlib import Path
from rich.logging import RichHandler

LOG_FILE_NAME = "dualcam.log"

def setup_logging(output_dir: Path, debug: bool = False) -> logging.Logger:
    """File log inside the output directory plus warnings on the console."""
    output_dir.mkdir(parents=True, exist_ok=True)
    level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    file_handler = logging.FileHandler(output_dir / LOG_FILE_NAME, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"
    ))
    root.addHandler(file_handler)

    console_handler = RichHandler(show_path=False, rich_tracebacks=True)
    console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    root.addHandler(console_handler)

    return logging.getLogger("dualcam")
