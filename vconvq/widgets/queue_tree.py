# vconvq/widgets/queue_tree.py
from pathlib import Path
from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QBrush
from PySide6.QtWidgets import QAbstractItemView, QHeaderView, QProgressBar, QTreeWidget, QTreeWidgetItem

from ..models.job import JobStatus
from ..models.queue import JobSnapshot, QueueSnapshot

COL_FILE, COL_STATUS, COL_PROGRESS, COL_MESSAGE = range(4)

_STATUS_COLORS = {
    JobStatus.COMPLETED: Qt.darkGreen,
    JobStatus.FAILED: Qt.red,
    JobStatus.CANCELLED: Qt.darkYellow,
    JobStatus.SKIPPED: Qt.gray,
}


class DropTree(QTreeWidget):
    pathsDropped = Signal(list)  # list[str]

    def __init__(self, *a, **kw):
        super().__init__(*a, **kw)
        self.setAcceptDrops(True)
        self.setDragDropMode(QAbstractItemView.DropOnly)

        self.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.setUniformRowHeights(True)
        self.setRootIsDecorated(False)

    def dragEnterEvent(self, event):
        """Accept the drag action if it contains file URLs."""
        if event.mimeData().hasUrls():
            event.acceptProposedAction()
        else:
            super().dragEnterEvent(event)

    def dragMoveEvent(self, event):
        """Accept the move action if it contains file URLs."""
        if event.mimeData().hasUrls():
            event.acceptProposedAction()
        else:
            super().dragMoveEvent(event)

    def dropEvent(self, event):
        if event.mimeData().hasUrls():
            paths = []
            for url in event.mimeData().urls():
                if url.isLocalFile():
                    p = Path(url.toLocalFile())
                    if p.exists(): paths.append(str(p))
            if paths:
                self.pathsDropped.emit(paths)
                event.acceptProposedAction()
                return
        event.ignore()


class QueueTree(DropTree):
    """Renders QueueSnapshot objects; rows are keyed by job id."""

    def __init__(self, *a, **kw):
        super().__init__(*a, **kw)
        self.setColumnCount(4)
        self.setHeaderLabels(["File", "Status", "Progress", "Message"])
        hdr = self.header()
        hdr.setStretchLastSection(True)
        hdr.setSectionResizeMode(COL_FILE, QHeaderView.Interactive)
        hdr.setSectionResizeMode(COL_STATUS, QHeaderView.ResizeToContents)
        hdr.setSectionResizeMode(COL_PROGRESS, QHeaderView.Interactive)
        self.setColumnWidth(COL_FILE, 360)
        self.setColumnWidth(COL_PROGRESS, 160)
        self._items: dict[str, QTreeWidgetItem] = {}

    def job_id_at(self, item: QTreeWidgetItem | None) -> str | None:
        return item.data(COL_FILE, Qt.UserRole) if item else None

    def selected_job_ids(self) -> list[str]:
        return [jid for it in self.selectedItems() if (jid := self.job_id_at(it))]

    def show_snapshot(self, snap: QueueSnapshot) -> None:
        live = {j.id for j in snap.jobs}
        for jid in [k for k in self._items if k not in live]:
            item = self._items.pop(jid)
            self.takeTopLevelItem(self.indexOfTopLevelItem(item))

        for job in snap.jobs:
            if (item := self._items.get(job.id)) is None:
                item = self._add_row(job)
            self._update_row(item, job)

    def _add_row(self, job: JobSnapshot) -> QTreeWidgetItem:
        item = QTreeWidgetItem([job.name, "", "", ""])
        item.setData(COL_FILE, Qt.UserRole, job.id)
        item.setToolTip(COL_FILE, str(job.input_path))
        self.addTopLevelItem(item)

        bar = QProgressBar()
        bar.setRange(0, 100)
        bar.setValue(0)
        bar.setFixedHeight(12)
        bar.setTextVisible(True)
        self.setItemWidget(item, COL_PROGRESS, bar)
        self._items[job.id] = item
        return item

    def _update_row(self, item: QTreeWidgetItem, job: JobSnapshot) -> None:
        item.setText(COL_STATUS, job.status.value)
        item.setText(COL_MESSAGE, job.message)
        item.setToolTip(COL_MESSAGE, job.message)
        if (color := _STATUS_COLORS.get(job.status)) is not None:
            item.setForeground(COL_STATUS, QBrush(color))
        else:
            item.setData(COL_STATUS, Qt.ForegroundRole, None)
        if bar := self.itemWidget(item, COL_PROGRESS):
            bar.setValue(int(round(job.progress * 100)))
