import logging
import sys
from pathlib import Path
from typing import Optional

from PySide6.QtCore import QObject, QTimer, Signal
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from subfontloader import __version__
from subfontloader.config import MODE_NO_RESIDUE, MODE_NORMAL, AppConfig
from subfontloader.scheduler import OP_PROCESS
from subfontloader.session import FontLoaderSession

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 100


class QLogSignal(QObject):
    log = Signal(str)


class QLogHandler(logging.Handler):
    def __init__(self, emitter):
        super().__init__()
        self._emitter = emitter

    @property
    def emitter(self):
        return self._emitter

    def emit(self, record):
        msg = self.format(record)
        self.emitter.log.emit(msg)


class FontLoaderApp(QMainWindow):
    """Drop subtitles and font folders, then load, unload or force clean."""

    def __init__(
        self,
        session: FontLoaderSession,
        app_config: AppConfig,
        sub_paths: Optional[list[Path]] = None,
    ):
        super().__init__()
        self.setAcceptDrops(True)
        self.session = session
        self.app_config = app_config
        self._shown_logs = 0

        # Warnings from worker threads arrive through a queued signal.
        self.q_log_signal = QLogSignal()
        self.log_handler = QLogHandler(self.q_log_signal)
        self.log_handler.setLevel(logging.WARNING)
        self.log_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logging.getLogger().addHandler(self.log_handler)
        self.q_log_signal.log.connect(self.txt_append)

        self.init_ui()
        self.refresh_ui()

        self.poll_timer = QTimer(self)
        self.poll_timer.timeout.connect(self.poll_session)
        self.poll_timer.start(POLL_INTERVAL_MS)

        if sub_paths:
            self.session.enqueue(sub_paths)
            self.flush_logs()

    def init_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        self.main_layout = QVBoxLayout(central)

        self.lbl_header = QLabel("Drop subtitle files and font folders here")
        self.lbl_header.setStyleSheet("font-size: 16px; font-weight: bold;")
        self.main_layout.addWidget(self.lbl_header)

        self.lbl_status = QLabel()
        self.main_layout.addWidget(self.lbl_status)

        btn_layout = QHBoxLayout()
        self.btn_load = QPushButton("Load fonts")
        self.btn_unload = QPushButton("Unload loaded fonts")
        self.btn_clean = QPushButton("Force clean directory...")
        self.btn_load.clicked.connect(self.action_load)
        self.btn_unload.clicked.connect(self.action_unload)
        self.btn_clean.clicked.connect(self.action_force_clean)
        btn_layout.addWidget(self.btn_load)
        btn_layout.addWidget(self.btn_unload)
        btn_layout.addWidget(self.btn_clean)
        btn_layout.addStretch()
        self.main_layout.addLayout(btn_layout)

        self.chk_no_residue = QCheckBox("No-residue mode (skip the font cache)")
        self.chk_no_residue.setChecked(self.session.mode == MODE_NO_RESIDUE)
        self.chk_no_residue.toggled.connect(self.action_toggle_mode)
        self.main_layout.addWidget(self.chk_no_residue)

        self.txt_details = QPlainTextEdit()
        self.txt_details.setReadOnly(True)
        self.main_layout.addWidget(self.txt_details)

    def refresh_ui(self):
        busy = self.session.busy
        for btn in (self.btn_load, self.btn_unload, self.btn_clean):
            btn.setEnabled(not busy)
        self.chk_no_residue.setEnabled(not busy)

        report = self.session.last_report
        if busy:
            self.lbl_status.setText("Working...")
        elif report is not None and report.ok and report.operation == OP_PROCESS:
            self.lbl_status.setText(report.result.summary())
        else:
            loaded = self.session.loaded_count()
            loaded_text = (
                "font registry unavailable" if loaded is None else f"{loaded} font(s) loaded"
            )
            self.lbl_status.setText(
                f"{len(self.session.pending_paths)} path(s) queued, {loaded_text}"
            )

    def txt_append(self, line: str):
        self.txt_details.appendPlainText(line)

    def flush_logs(self):
        for line in self.session.logs[self._shown_logs :]:
            self.txt_append(line)
        self._shown_logs = len(self.session.logs)
        self.refresh_ui()

    def poll_session(self):
        self.session.poll()
        if len(self.session.logs) != self._shown_logs:
            self.flush_logs()

    def action_load(self):
        self.session.load_pending()
        self.flush_logs()

    def action_unload(self):
        self.session.unload_all()
        self.flush_logs()

    def action_force_clean(self):
        folder = QFileDialog.getExistingDirectory(self, "Select a font directory")
        if not folder:
            return
        self.session.force_clean(Path(folder))
        self.flush_logs()

    def action_toggle_mode(self, checked: bool):
        mode = MODE_NO_RESIDUE if checked else MODE_NORMAL
        self.session.mode = mode
        self.app_config.set_mode(mode)

    # --- Drag & Drop ---
    def dragEnterEvent(self, event):
        if event.mimeData().hasUrls():
            event.accept()
        else:
            event.ignore()

    def dropEvent(self, event):
        paths = [Path(u.toLocalFile()) for u in event.mimeData().urls() if u.isLocalFile()]
        if not paths:
            return
        logger.debug(f"Dropped paths: {paths}")
        self.session.enqueue(paths)
        self.flush_logs()

    def closeEvent(self, event):
        self.poll_timer.stop()
        self.session.close()
        logging.getLogger().removeHandler(self.log_handler)
        event.accept()


def run(sub_paths: Optional[list[Path]] = None, app_config: Optional[AppConfig] = None) -> int:
    app_config = app_config or AppConfig()
    app = QApplication.instance() or QApplication(sys.argv)
    app.setApplicationName("SubFontLoader")
    app.setDesktopFileName("SubFontLoader")

    session = FontLoaderSession(
        mode=app_config.get_mode(),
        cache_path=app_config.get_cache_path(),
        processes=app_config.get_index_processes(),
    )
    window = FontLoaderApp(session, app_config, sub_paths=sub_paths)
    window.setWindowTitle(f"SubFontLoader {__version__}")
    window.resize(640, 420)
    window.show()
    return app.exec()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    sys.exit(run([Path(arg) for arg in sys.argv[1:]]))
