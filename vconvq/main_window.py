# vconvq/main_window.py
import logging
from pathlib import Path

from PySide6.QtCore import Qt, QUrl
from PySide6.QtGui import QAction, QDesktopServices, QGuiApplication
from PySide6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QLabel, QHBoxLayout, QPushButton, QSplitter,
    QTextEdit, QMenu, QFileDialog, QDialog
)

from .errors import BatchAlreadyRunning, InvalidSettings, OutputDirectoryMissing
from .engine.scheduler import ConversionScheduler
from .models.job import JobStatus
from .models.queue import QueueSnapshot
from .utils.settings import load_settings, save_settings, conversion_settings, coerce_conversion_settings
from .utils.paths import collect_media_files, find_ffmpeg, VIDEO_EXTENSIONS
from .workers.duration_probe import probe_duration
from .workers.ffmpeg_runner import FFmpegRunner
from .widgets.queue_tree import QueueTree
from .dialogs.prefs import PrefsDialog

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    def __init__(self, settings: dict | None = None, scheduler: ConversionScheduler | None = None):
        super().__init__()
        self.setWindowTitle("Video Convert Queue")
        self.resize(1100, 720)
        self.settings = coerce_conversion_settings(settings if settings is not None else load_settings())

        self.queue_label = QLabel("Queue: 0 jobs loaded")
        self.queue_label.setStyleSheet("font-weight:600;")
        self.settings_label = QLabel()

        self.tree = QueueTree()
        self.tree.setContextMenuPolicy(Qt.CustomContextMenu)
        self.tree.customContextMenuRequested.connect(self._row_menu)
        self.tree.pathsDropped.connect(self._add_paths)

        self.console = QTextEdit(); self.console.setReadOnly(True)
        self.console.setPlaceholderText("ffmpeg output will appear here…")

        self.v_split = QSplitter(Qt.Vertical)
        self.v_split.addWidget(self.tree)
        self.v_split.addWidget(self.console)
        self.v_split.setSizes([520, 200])

        self.btn_add_files = QPushButton("Add File(s)…"); self.btn_add_files.clicked.connect(self.add_files)
        self.btn_add_folder = QPushButton("Add Folder…"); self.btn_add_folder.clicked.connect(self.add_folder)
        self.btn_remove = QPushButton("Remove Selected"); self.btn_remove.clicked.connect(self.remove_selected)
        self.btn_clear = QPushButton("Clear"); self.btn_clear.clicked.connect(self.clear_all)
        self.btn_set_out = QPushButton("Set Output Folder…"); self.btn_set_out.clicked.connect(self.set_output_dir)
        self.btn_start = QPushButton("Start Queue"); self.btn_start.clicked.connect(self.start_queue)
        self.btn_stop = QPushButton("Cancel"); self.btn_stop.setEnabled(False); self.btn_stop.clicked.connect(self.stop_queue)

        top = QHBoxLayout()
        for b in (self.btn_add_files, self.btn_add_folder, self.btn_remove, self.btn_clear, self.btn_set_out, self.btn_start, self.btn_stop): top.addWidget(b)
        top.addStretch()

        central = QWidget(); v = QVBoxLayout(central)
        v.addWidget(self.queue_label); v.addWidget(self.settings_label); v.addLayout(top); v.addWidget(self.v_split)
        self.setCentralWidget(central)

        m = self.menuBar().addMenu("&Options")
        act_prefs = QAction("Preferences…", self); act_prefs.triggered.connect(self.open_prefs); m.addAction(act_prefs)

        if scheduler is None:
            runner = FFmpegRunner(
                duration_probe=lambda p, cancel=None: probe_duration(p, self.settings.get("ffprobe_path"), cancel=cancel),
                terminate_timeout=float(self.settings.get("terminate_timeout", 5.0)),
            )
            scheduler = ConversionScheduler(runner, locate_ffmpeg=lambda: find_ffmpeg(self.settings.get("ffmpeg_path")))
        self.scheduler = scheduler
        self.scheduler.setParent(self)
        self.scheduler.changed.connect(self.on_changed)
        self.scheduler.batch_finished.connect(self.on_batch_finished)
        self.scheduler.runner.line_out.connect(self.on_line)

        self._restore_layout()
        self._refresh_settings_label()
        self.on_changed(self.scheduler.snapshot())

    def _restore_layout(self):
        if cw := self.settings.get("col_widths"):
            if len(cw) == self.tree.columnCount():
                for i, w in enumerate(cw): self.tree.setColumnWidth(i, int(w))
        if vs := self.settings.get("v_split_sizes"): self.v_split.setSizes([int(x) for x in vs])

    def _save_layout(self):
        self.settings["col_widths"] = [self.tree.columnWidth(i) for i in range(self.tree.columnCount())]
        self.settings["v_split_sizes"] = self.v_split.sizes()
        save_settings(self.settings)

    def closeEvent(self, e):
        self.scheduler.cancel_batch()
        # long enough for a SIGTERM-deaf ffmpeg to be force-killed
        if not self.scheduler.runner.wait(float(self.scheduler.runner.terminate_timeout) + 1.0):
            logger.warning("ffmpeg worker still running at exit")
        self._save_layout()
        super().closeEvent(e)

    def _row_menu(self, pos):
        if not (item := self.tree.itemAt(pos)): return
        job_id = self.tree.job_id_at(item)
        if not (job := self.scheduler.snapshot().get(job_id)): return

        menu = QMenu(self)
        def _open(p: Path | None):
            if p and Path(p).exists(): QDesktopServices.openUrl(QUrl.fromLocalFile(str(p)))

        act_cancel = QAction("Cancel", self); act_cancel.triggered.connect(lambda: self.scheduler.cancel_job(job_id))
        act_cancel.setEnabled(not job.status.is_terminal); menu.addAction(act_cancel)
        act_retry = QAction("Retry", self); act_retry.triggered.connect(lambda: self.scheduler.retry(job_id))
        act_retry.setEnabled(job.status.is_terminal); menu.addAction(act_retry)
        act_remove = QAction("Remove", self); act_remove.triggered.connect(lambda: self.scheduler.remove(job_id)); menu.addAction(act_remove)
        menu.addSeparator()
        act_open_out = QAction("Open Output Folder", self)
        act_open_out.triggered.connect(lambda: _open(job.output_path.parent if job.output_path else None)); menu.addAction(act_open_out)
        act_copy = QAction("Copy Message", self); act_copy.triggered.connect(lambda: QGuiApplication.clipboard().setText(job.message)); menu.addAction(act_copy)

        menu.exec(self.tree.viewport().mapToGlobal(pos))

    def add_files(self):
        patterns = " ".join(f"*{ext}" for ext in sorted(VIDEO_EXTENSIONS))
        files, _ = QFileDialog.getOpenFileNames(self, "Select video files", str(Path.home()), f"Videos ({patterns});;All files (*)")
        if files: self._add_paths(files)

    def add_folder(self):
        d = QFileDialog.getExistingDirectory(self, "Choose folder of videos", str(Path.home()))
        if d: self._add_paths([d])

    def _add_paths(self, paths):
        if not (files := collect_media_files(paths)):
            self.console.append("No video files found in selection.")
            return
        self.scheduler.enqueue(files)

    def remove_selected(self):
        for job_id in self.tree.selected_job_ids():
            self.scheduler.remove(job_id)

    def clear_all(self):
        self.scheduler.clear(); self.console.clear()

    def set_output_dir(self):
        d = QFileDialog.getExistingDirectory(self, "Choose output folder", self.settings["output_dir"])
        if d:
            self.settings["output_dir"] = d; save_settings(self.settings)
            self._refresh_settings_label()

    def start_queue(self):
        if self.scheduler.is_running(): return
        out_dir = Path(self.settings["output_dir"])
        if not out_dir.is_dir():
            d = QFileDialog.getExistingDirectory(self, "Choose output folder", str(Path.home()))
            if not d:
                self.console.append("=== No output folder chosen ===")
                return
            out_dir = Path(d)
            self.settings["output_dir"] = d; save_settings(self.settings)
        if not self.scheduler.snapshot().with_status(JobStatus.PENDING):
            self.console.append("=== No pending jobs to run ===")
            return

        try:
            snapshot = conversion_settings(self.settings)
            self.console.clear(); self.console.append(f"=== Starting queue ({snapshot.describe()}) ===")
            self.scheduler.start_batch(out_dir, snapshot, overwrite=bool(self.settings.get("overwrite_existing", True)))
        except (InvalidSettings, OutputDirectoryMissing, BatchAlreadyRunning) as e:
            self.console.append(f"ERROR: {e}")

    def stop_queue(self):
        if self.scheduler.is_running():
            self.console.append(">>> Cancel requested, terminating current job…")
            self.scheduler.cancel_batch()

    def _refresh_settings_label(self):
        try:
            desc = conversion_settings(self.settings).describe()
        except InvalidSettings as e:
            desc = str(e)
        self.settings_label.setText(f"{desc} → {self.settings['output_dir']}")

    def on_changed(self, snap: QueueSnapshot):
        self.tree.show_snapshot(snap)
        text = snap.summary
        if (active := snap.active_job) is not None:
            text += f" • Working on: {active.name}"
        self.queue_label.setText(text)
        self.btn_start.setEnabled(not snap.is_running)
        self.btn_stop.setEnabled(snap.is_running)

    def on_batch_finished(self, snap: QueueSnapshot):
        self.console.append(f"=== Queue finished: {snap.summary} ===")

    def on_line(self, job_id: str, line: str):
        self.console.append(line)

    def open_prefs(self):
        dlg = PrefsDialog(self.settings, self)
        if dlg.exec() == QDialog.Accepted:
            self.settings.update(dlg.get_values())
            save_settings(self.settings)
            self.scheduler.runner.terminate_timeout = float(self.settings["terminate_timeout"])
            self._refresh_settings_label()
            self.console.append("Saved preferences.")
