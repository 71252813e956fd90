from __future__ import annotations

from image_compressor.core.config import Config
from image_compressor.core.logging_config import setup_logging


def main() -> None:
    setup_logging(Config.LOG_LEVEL)

    from image_compressor.ui.main_window import MainWindow

    app = MainWindow()
    app.mainloop()


if __name__ == "__main__":
    main()
