# vconvq/dialogs/prefs.py
from PySide6.QtWidgets import (
    QCheckBox, QComboBox, QDialog, QDialogButtonBox, QDoubleSpinBox, QFileDialog,
    QFormLayout, QHBoxLayout, QLineEdit, QPushButton, QVBoxLayout
)

from ..models.conversion import AUDIO_CODECS, DISPLAY_NAMES, OUTPUT_FORMATS, QUALITY_PRESETS, VIDEO_CODECS


def _combo(values, current: str) -> QComboBox:
    box = QComboBox()
    for v in values:
        box.addItem(DISPLAY_NAMES[v], v)
    if (i := box.findData(current)) >= 0:
        box.setCurrentIndex(i)
    return box


class PrefsDialog(QDialog):
    def __init__(self, settings: dict, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Preferences")
        self.settings = settings
        self.setMinimumWidth(560)

        self.out_edit = QLineEdit(self.settings["output_dir"])
        btn_browse_out = QPushButton("Browse…"); btn_browse_out.clicked.connect(self._browse_out)
        self.ff_edit = QLineEdit(self.settings["ffmpeg_path"])
        btn_browse_ff = QPushButton("Browse…"); btn_browse_ff.clicked.connect(self._browse_ff)
        self.probe_edit = QLineEdit(self.settings.get("ffprobe_path", ""))
        btn_browse_probe = QPushButton("Browse…"); btn_browse_probe.clicked.connect(self._browse_probe)

        self.format_box = _combo(OUTPUT_FORMATS, self.settings["output_format"])
        self.vcodec_box = _combo(VIDEO_CODECS, self.settings["video_codec"])
        self.acodec_box = _combo(AUDIO_CODECS, self.settings["audio_codec"])
        self.quality_box = _combo(QUALITY_PRESETS, self.settings["quality_preset"])

        self.chk_overwrite = QCheckBox("Overwrite existing output files (otherwise skip them)")
        self.chk_overwrite.setChecked(self.settings.get("overwrite_existing", True))

        self.term_spin = QDoubleSpinBox(); self.term_spin.setRange(0.5, 120.0); self.term_spin.setDecimals(1)
        self.term_spin.setValue(float(self.settings.get("terminate_timeout", 5.0))); self.term_spin.setSuffix(" s before force-kill on cancel")

        form = QFormLayout()
        row_out = QHBoxLayout(); row_out.addWidget(self.out_edit); row_out.addWidget(btn_browse_out)
        form.addRow("Output folder:", row_out)
        row_ff = QHBoxLayout(); row_ff.addWidget(self.ff_edit); row_ff.addWidget(btn_browse_ff)
        form.addRow("ffmpeg path:", row_ff)
        row_probe = QHBoxLayout(); row_probe.addWidget(self.probe_edit); row_probe.addWidget(btn_browse_probe)
        form.addRow("ffprobe path:", row_probe)
        form.addRow("Output format:", self.format_box)
        form.addRow("Video codec:", self.vcodec_box)
        form.addRow("Audio codec:", self.acodec_box)
        form.addRow("Quality:", self.quality_box)
        form.addRow("", self.chk_overwrite)
        form.addRow("Cancel timeout:", self.term_spin)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self.accept); buttons.rejected.connect(self.reject)

        layout = QVBoxLayout(self); layout.addLayout(form); layout.addWidget(buttons)

    def _browse_out(self):
        d = QFileDialog.getExistingDirectory(self, "Choose output folder", self.out_edit.text())
        if d: self.out_edit.setText(d)

    def _browse_ff(self):
        f, _ = QFileDialog.getOpenFileName(self, "Locate ffmpeg", self.ff_edit.text() or "/usr/bin", "All (*)")
        if f: self.ff_edit.setText(f)

    def _browse_probe(self):
        f, _ = QFileDialog.getOpenFileName(self, "Locate ffprobe", self.probe_edit.text() or "/usr/bin", "All (*)")
        if f: self.probe_edit.setText(f)

    def get_values(self) -> dict:
        return {
            "output_dir": self.out_edit.text().strip(),
            "ffmpeg_path": self.ff_edit.text().strip() or "ffmpeg",
            "ffprobe_path": self.probe_edit.text().strip() or "ffprobe",
            "output_format": self.format_box.currentData(),
            "video_codec": self.vcodec_box.currentData(),
            "audio_codec": self.acodec_box.currentData(),
            "quality_preset": self.quality_box.currentData(),
            "overwrite_existing": self.chk_overwrite.isChecked(),
            "terminate_timeout": float(self.term_spin.value()),
        }
