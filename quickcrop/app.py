"""
Application entry point and theme stylesheets.

Usage:
    python -m quickcrop
    quickcrop          (after pip install)
"""

import logging
import sys

from PyQt6.QtWidgets import QApplication

from quickcrop.main_window import MainWindow

DARK_STYLESHEET = """
    QMainWindow { background: #2b2b2b; }
    QWidget { background: #2b2b2b; color: #ddd; font-size: 10pt; }
    QListWidget { background: #1e1e1e; border: 1px solid #444; }
    QListWidget::item { padding: 4px; }
    QListWidget::item:selected { background: #3a6ea5; }
    QGroupBox { border: 1px solid #555; border-radius: 4px; margin-top: 8px; padding-top: 12px; font-weight: bold; }
    QGroupBox::title { subcontrol-origin: margin; left: 8px; padding: 0 4px; }
    QPushButton { background: #3a3a3a; border: 1px solid #555; border-radius: 4px; padding: 6px 12px; text-align: left; }
    QPushButton:hover { background: #4a4a4a; }
    QPushButton:pressed { background: #2a2a2a; }
    QPushButton:checked { background: #3a6ea5; border-color: #5a8ec5; }
    QPushButton:disabled { color: #666; }
    QLineEdit, QComboBox { background: #1e1e1e; border: 1px solid #555; border-radius: 4px; padding: 4px; }
    QToolBar { background: #333; border-bottom: 1px solid #444; spacing: 4px; padding: 4px; }
    QStatusBar { background: #333; border-top: 1px solid #444; }
"""

LIGHT_STYLESHEET = """
    QMainWindow { background: #f4f4f4; }
    QWidget { background: #f4f4f4; color: #222; font-size: 10pt; }
    QListWidget { background: #ffffff; border: 1px solid #ccc; }
    QListWidget::item { padding: 4px; }
    QListWidget::item:selected { background: #3a6ea5; color: #fff; }
    QGroupBox { border: 1px solid #ccc; border-radius: 4px; margin-top: 8px; padding-top: 12px; font-weight: bold; }
    QGroupBox::title { subcontrol-origin: margin; left: 8px; padding: 0 4px; }
    QPushButton { background: #ffffff; border: 1px solid #bbb; border-radius: 4px; padding: 6px 12px; text-align: left; }
    QPushButton:hover { background: #eaeaea; }
    QPushButton:pressed { background: #dddddd; }
    QPushButton:checked { background: #3a6ea5; border-color: #5a8ec5; color: #fff; }
    QPushButton:disabled { color: #aaa; }
    QLineEdit, QComboBox { background: #ffffff; border: 1px solid #bbb; border-radius: 4px; padding: 4px; }
    QToolBar { background: #e8e8e8; border-bottom: 1px solid #ccc; spacing: 4px; padding: 4px; }
    QStatusBar { background: #e8e8e8; border-top: 1px solid #ccc; }
"""


def apply_theme(app: QApplication, dark: bool) -> None:
    app.setStyleSheet(DARK_STYLESHEET if dark else LIGHT_STYLESHEET)


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = QApplication(sys.argv)
    apply_theme(app, dark=True)

    window = MainWindow()
    window.theme_toggled.connect(lambda dark: apply_theme(app, dark))
    window.show()

    try:
        sys.exit(app.exec())
    except (SystemExit, KeyboardInterrupt):
        pass


if __name__ == "__main__":
    main()
